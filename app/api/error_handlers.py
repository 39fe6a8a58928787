"""
Exception handlers for FastAPI.

Engine exceptions become `{error, message, details}` JSON with a status
code chosen by exception type.
"""

import logging
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    CampaignEngineException,
    ConfigurationError,
    DatabaseError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def status_code_for(exc: CampaignEngineException) -> int:
    """HTTP status for an engine exception."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, InvalidStateError):
        return 409
    if isinstance(exc, DatabaseError):
        return 503
    if isinstance(exc, ConfigurationError):
        return 500
    return 500


async def engine_exception_handler(
    request: Request, exc: CampaignEngineException
) -> JSONResponse:
    """Handler for every custom exception."""
    status_code = status_code_for(exc)
    error_type = exc.__class__.__name__

    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"{error_type}: {exc.message}",
        extra={"error_type": error_type, "details": exc.details, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            {"error": error_type, "message": exc.message, "details": exc.details}
        ),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are reported like any other ValidationError."""
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Validation failed",
            "details": {"errors": errors},
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(f"Unhandled error: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=500,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register every exception handler on the FastAPI app.

    Usage:
        from app.api.error_handlers import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(CampaignEngineException, engine_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Fallback for anything unhandled
    app.add_exception_handler(Exception, generic_exception_handler)
