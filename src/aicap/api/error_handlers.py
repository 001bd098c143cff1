"""Global exception handlers: logs full details internally, returns sanitized errors to callers.

Validation and security rejections carry their specific reason.
Persistence and unexpected failures return an opaque message; the detail
stays in the server log.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from aicap.errors import DispatchRejected, InvalidName
from aicap.webhooks.secrets import SecretDecryptionError

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(DispatchRejected)
    async def dispatch_rejected_handler(request: Request, exc: DispatchRejected) -> JSONResponse:
        await logger.awarning(
            "request_rejected",
            path=request.url.path,
            reason=exc.reason.value,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message, "reason": exc.reason.value},
        )

    @app.exception_handler(InvalidName)
    async def invalid_name_handler(request: Request, exc: InvalidName) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(SecretDecryptionError)
    async def secret_decryption_handler(request: Request, exc: SecretDecryptionError) -> JSONResponse:
        await logger.aerror("secret_decryption_failed", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Stored webhook secret could not be decrypted"},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        await logger.awarning(
            "validation_error",
            path=request.url.path,
            errors=exc.error_count(),
        )
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors(include_url=False)},
        )

    @app.exception_handler(SQLAlchemyError)
    async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        await logger.aerror(
            "persistence_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        await logger.aerror(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
