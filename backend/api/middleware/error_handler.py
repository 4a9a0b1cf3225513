"""
Global error handlers for the Memoria API.

Curation errors carry their own HTTP status and error code; everything is
rendered as {"error": {"code", "message", "details"}}. Internal details of
unexpected failures are never exposed to clients.
"""
import sqlite3

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from curation.errors import CurationError

logger = structlog.get_logger("memoria.api.errors")


def error_response(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details if details else None,
            }
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(CurationError)
    async def curation_error_handler(request: Request, exc: CurationError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("curation_error", code=exc.error_code, error=exc.message, path=request.url.path)
        else:
            logger.info("curation_rejected", code=exc.error_code, error=exc.message, path=request.url.path)
        return error_response(exc.status_code, exc.error_code, exc.message, exc.details)

    @app.exception_handler(sqlite3.OperationalError)
    async def db_operational_error(request: Request, exc: sqlite3.OperationalError) -> JSONResponse:
        logger.error("database_error", error=str(exc), path=request.url.path)
        return error_response(503, "DB_UNAVAILABLE", "Database temporarily unavailable. Please retry.")

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("validation_error", error=str(exc), path=request.url.path)
        return error_response(422, "INVALID_INPUT", str(exc))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "unhandled_error",
            error_type=type(exc).__name__,
            error=str(exc),
            path=request.url.path,
        )
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")
