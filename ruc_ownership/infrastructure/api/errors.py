"""Domain errors → JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ruc_ownership.domain.errors import (
    Conflict,
    Forbidden,
    NotFound,
    OwnershipError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: list[tuple[type[OwnershipError], int]] = [
    (ValidationError, 400),
    (Forbidden, 403),
    (NotFound, 404),
    (Conflict, 409),
]


def status_for(exc: OwnershipError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(OwnershipError)
    async def ownership_error_handler(request: Request, exc: OwnershipError) -> JSONResponse:
        status = status_for(exc)
        level = logging.WARNING if status < 500 else logging.ERROR
        logger.log(level, "%s %s → %s: %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=status, content={"error": exc.code, "detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500, content={"error": "internal", "detail": "Internal server error"}
        )
