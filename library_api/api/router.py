from __future__ import annotations

from fastapi import APIRouter
from library_api.api.routes import books, health

api_router = APIRouter()

# Registration order is route matching order.
api_router.include_router(health.router)
api_router.include_router(books.router)
