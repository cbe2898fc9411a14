"""Application exceptions and their FastAPI handlers."""
import traceback
from typing import Optional, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from .logging_config import get_logger

logger = get_logger("error_handlers")


class AppException(Exception):
    """Base exception for errors the API reports to the client."""

    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ResourceNotFoundError(AppException):
    """Unknown batch id or cart key."""

    def __init__(self, resource: str, identifier: Union[int, str]):
        super().__init__(
            message=f"{resource} with identifier '{identifier}' not found",
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class EmptyInputError(AppException):
    """Scan or manual entry without a code."""

    def __init__(self):
        super().__init__(message="Empty code", status_code=422)


# ---------------------------------------------------------------------------
# Price-list import failures
# ---------------------------------------------------------------------------

class ImportFailedError(AppException):
    """An uploaded price list produced no batch."""

    def __init__(self, message: str, file_name: Optional[str] = None, status_code: int = 422, **details):
        if file_name is not None:
            details["file_name"] = file_name
        super().__init__(message=message, status_code=status_code, details=details)


class NoProductsFoundError(ImportFailedError):
    """The file was readable but no row yielded a product."""

    def __init__(self, file_name: str):
        super().__init__(
            "No valid products found. Expected column order: "
            "Brand, Code, EAN, Description, MinQty, Price.",
            file_name=file_name,
        )


class SpreadsheetDecodeError(ImportFailedError):
    """Corrupt, unsupported or empty workbook."""

    def __init__(self, message: str, original_error: str = None):
        super().__init__(f"Spreadsheet could not be read: {message}", original_error=original_error)


class UnreadableFileError(ImportFailedError):
    """Binary content uploaded under a text file name."""

    def __init__(self, file_name: str):
        super().__init__(
            "File could not be decoded as text; upload spreadsheets as .xls/.xlsx",
            file_name=file_name,
        )


class UploadTooLargeError(ImportFailedError):
    def __init__(self, size_bytes: int, limit_mb: int):
        super().__init__(
            f"Uploaded file exceeds {limit_mb} MB",
            status_code=413,
            size_bytes=size_bytes,
            limit_mb=limit_mb,
        )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _error_response(request: Request, status_code: int, error: str, **body) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, **body, "path": request.url.path},
    )


def _request_context(request: Request, **extra) -> dict:
    return {"path": request.url.path, "method": request.method, **extra}


async def app_exception_handler(request: Request, exc: AppException):
    # 4xx logged as warnings
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"[{type(exc).__name__}] {exc.message}",
        extra=_request_context(request, status_code=exc.status_code, details=exc.details),
    )
    return _error_response(request, exc.status_code, exc.message, details=exc.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Validation error on {request.method} {request.url.path}",
        extra=_request_context(request, validation_errors=errors),
    )
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation failed",
        validation_errors=errors,
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
    """Storage failures on batch operations; cart saves never get here."""
    if isinstance(exc, IntegrityError):
        status_code, error = status.HTTP_409_CONFLICT, "Data integrity constraint violated"
    else:
        status_code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "Database error occurred"

    logger.error(
        f"[STORE] {type(exc).__name__}: {exc}",
        extra=_request_context(request, exception_type=type(exc).__name__),
        exc_info=True
    )
    return _error_response(request, status_code, error)


async def generic_exception_handler(request: Request, exc: Exception):
    logger.critical(
        f"Unhandled exception: {exc}",
        extra=_request_context(
            request,
            exception_type=type(exc).__name__,
            traceback=traceback.format_exc(),
        ),
        exc_info=True
    )
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        message="An unexpected error occurred.",
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
