"""Custom exception handlers for the FastAPI application.

Converts domain exceptions into HTTP responses with the right status codes.

Hey future me - Starlette picks the handler of the MOST SPECIFIC class in the
exception's MRO. So SyncAlreadyRunningError gets 409 even though its parent
InvalidStateException is mapped to 400, and SyncRunFailedError gets 502 even
though SyncRunError is mapped to 409.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from chartmirror.domain.exceptions import (
    ConfigurationError,
    DomainException,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    SyncAlreadyRunningError,
    SyncRunError,
    SyncRunFailedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# 422 spelled out; starlette renamed the constant
HTTP_422 = 422


def _error_response(
    request: Request, exc: DomainException, status_code: int, **content: Any
) -> JSONResponse:
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "%s at %s: %s",
        type(exc).__name__,
        request.url.path,
        exc.message,
        extra={"path": request.url.path, "error": exc.message, "status_code": status_code},
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message, **content})


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for the domain exceptions.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        """404 Not Found."""
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": str(exc.entity_id),
            },
        )
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"detail": exc.message},
        )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """422 Unprocessable Entity."""
        return _error_response(request, exc, HTTP_422)

    @app.exception_handler(InvalidStateException)
    async def invalid_state_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        """400 Bad Request."""
        return _error_response(request, exc, status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(SyncAlreadyRunningError)
    async def sync_already_running_handler(
        request: Request, exc: SyncAlreadyRunningError
    ) -> JSONResponse:
        """409 Conflict - a run is already in flight."""
        return _error_response(request, exc, status.HTTP_409_CONFLICT)

    @app.exception_handler(SyncRunError)
    async def sync_run_error_handler(request: Request, exc: SyncRunError) -> JSONResponse:
        """409 Conflict - the run was cancelled (worker shutting down)."""
        return _error_response(
            request, exc, status.HTTP_409_CONFLICT, progress=exc.progress.to_dict()
        )

    @app.exception_handler(SyncRunFailedError)
    async def sync_run_failed_handler(
        request: Request, exc: SyncRunFailedError
    ) -> JSONResponse:
        """502 Bad Gateway - the catalog failed mid-run. Progress is included."""
        return _error_response(
            request, exc, status.HTTP_502_BAD_GATEWAY, progress=exc.progress.to_dict()
        )

    @app.exception_handler(ExternalServiceError)
    async def external_service_error_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        """502 Bad Gateway."""
        return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY)

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        """503 Service Unavailable."""
        return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE)
