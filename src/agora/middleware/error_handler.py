"""Global error handlers: every failure leaves the API as a JSON body with a stable status code."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agora.errors import (
    AgoraError,
    DuplicateEmailError,
    DuplicateNameError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    NotificationError,
    RoleNotFoundError,
    StorageUnavailableError,
    TokenInvalidOrExpiredError,
    VersionConflictError,
)

logger = structlog.get_logger()

ERROR_STATUS: tuple[tuple[type[AgoraError], int], ...] = (
    (NotFoundError, 404),
    (TokenInvalidOrExpiredError, 404),
    (DuplicateNameError, 409),
    (DuplicateEmailError, 409),
    (VersionConflictError, 409),
    (InputValidationError, 400),
    (ForbiddenError, 403),
    (StorageUnavailableError, 503),
    (NotificationError, 502),
    # A configured role name missing from the roles table.
    (RoleNotFoundError, 500),
)


def status_for(exc: AgoraError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AgoraError)
    async def domain_error_handler(request: Request, exc: AgoraError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("request_failed", path=request.url.path, error_type=type(exc).__name__, status=status)
            detail = str(exc) if status in (502, 503) else "Internal server error"
            content = {"detail": detail, "error": type(exc).__name__}
        else:
            content = {"detail": str(exc)}
        headers = {"Retry-After": "1"} if exc.retriable else None
        return JSONResponse(status_code=status, content=content, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, object]]:
    """Field locations and messages only; raw input and exception contexts are dropped."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
