"""Map domain exceptions to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog

from stackhand.errors import (
    AuthorizationDenied,
    GuardViolation,
    InvalidTransition,
    ResourceNotFound,
    ValidationFailed,
)

logger = structlog.get_logger(__name__)


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc), "errors": exc.errors},
    )


async def authorization_denied_handler(request: Request, exc: AuthorizationDenied) -> JSONResponse:
    logger.warning("authorization_denied", reason=str(exc))
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


async def not_found_handler(request: Request, exc: ResourceNotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.info("request_conflict", reason=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationFailed, validation_failed_handler)
    app.add_exception_handler(AuthorizationDenied, authorization_denied_handler)
    app.add_exception_handler(ResourceNotFound, not_found_handler)
    app.add_exception_handler(GuardViolation, conflict_handler)
    app.add_exception_handler(InvalidTransition, conflict_handler)
