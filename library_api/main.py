from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from library_api.api.errors import install_error_handlers
from library_api.api.router import api_router
from library_api.core.config import Settings, get_settings
from library_api.core.logging import configure_logging
from library_api.core.otel import init_otel
from library_api.db.migrate import apply_migrations
from library_api.db.session import create_session_factory, create_store_engine
from library_api.domain.errors import MigrationError
from library_api.middleware.access_log import AccessLogMiddleware
from library_api.middleware.request_id import RequestIdMiddleware
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = create_store_engine(
            settings.database_url, busy_timeout_secs=settings.db_busy_timeout_secs
        )
        try:
            applied = await run_in_threadpool(apply_migrations, engine, settings.migrations_dir)
        except MigrationError as exc:
            logger.critical("Refusing to start: %s", exc.message)
            engine.dispose()
            raise
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))

        app.state.engine = engine
        app.state.session_factory = create_session_factory(engine)
        logger.info("%s started", settings.api_name)
        try:
            yield
        finally:
            engine.dispose()
            logger.info("%s stopped", settings.api_name)

    app = FastAPI(title=settings.api_name, lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIdMiddleware)
    install_error_handlers(app)

    app.include_router(api_router)

    init_otel(app, settings)
    return app


app = create_app()


def serve() -> None:
    settings = get_settings()
    uvicorn.run(
        "library_api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
