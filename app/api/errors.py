"""Maps application exceptions raised past the workflow boundary to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.core.exceptions import (
    AppError,
    AuthenticationError,
    DocumentStoreError,
    InvalidTransitionError,
    RecordNotFoundError,
    RecordStoreError,
    ValidationError,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Most specific first
_STATUS_CODES = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (RecordStoreError, status.HTTP_502_BAD_GATEWAY),
    (DocumentStoreError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(error: AppError) -> int:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = LOGGER.error if status_code >= 500 else LOGGER.info
    log(
        "Request failed",
        exc_info=exc if status_code >= 500 else None,
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "status_code": status_code,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_type": type(exc).__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
