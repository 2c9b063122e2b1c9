from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from library_api.domain.errors import ErrorKind, LibraryError, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation: 400,
    ErrorKind.not_found: 404,
    ErrorKind.conflict: 409,
    ErrorKind.migration: 500,
    ErrorKind.internal: 500,
}

# Kinds whose message is never shown to clients.
_HIDDEN_KINDS = {ErrorKind.migration, ErrorKind.internal}


def _field_name(loc: tuple) -> str:
    # ("body", "title") -> "title"; ("path", "book_id") -> "book_id"
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "body"


async def library_error_handler(request: Request, exc: LibraryError) -> JSONResponse:
    status_code = STATUS_BY_KIND[exc.kind]
    if exc.kind in _HIDDEN_KINDS:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        return JSONResponse(status_code=status_code, content={"error": INTERNAL_ERROR_MESSAGE})

    logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc.message)
    content: dict[str, str] = {"error": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            return JSONResponse(status_code=400, content={"error": "Malformed JSON in request body"})
        errors.append({"field": _field_name(tuple(err.get("loc", ()))), "message": err.get("msg", "")})
    return JSONResponse(status_code=400, content={"errors": errors})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LibraryError, library_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
