"""Exception handlers for converting custom exceptions to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from backend.app.core.exceptions import (
    ClassroomException,
    ValidationError,
    UnsupportedTypeError,
    UploadTooLargeError,
    DuplicateReportError,
    ReportNotFoundError,
    UploadFailureError,
)

logger = logging.getLogger(__name__)


def error_envelope(code: int, message: str, data: dict | None = None) -> dict:
    """Build the response envelope shared by every report endpoint."""
    return {
        "flag": False,
        "code": code,
        "message": message,
        "data": data or {},
    }


async def classroom_exception_handler(request: Request, exc: ClassroomException) -> JSONResponse:
    """
    Handle all application exceptions and convert to appropriate HTTP responses.

    Args:
        request: The incoming request
        exc: The exception that was raised

    Returns:
        JSONResponse carrying the response envelope
    """
    # Map exception types to HTTP status codes
    if isinstance(exc, (ValidationError, UnsupportedTypeError, UploadTooLargeError, DuplicateReportError)):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, ReportNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if status_code >= 500:
        logger.error(f"[ERROR] {request.method} {request.url.path}: {exc.details or exc.message}")
    else:
        logger.warning(f"[ERROR] {request.method} {request.url.path}: {exc.message}")

    content = error_envelope(status_code, exc.message)

    if isinstance(exc, UploadFailureError):
        content["data"] = exc.data
        if exc.upload_status is not None:
            content["uploadStatus"] = exc.upload_status
        if exc.transfer_status is not None:
            content["transferStatus"] = exc.transfer_status

    return JSONResponse(status_code=status_code, content=content)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Convert any unexpected exception into the generic failure envelope."""
    logger.exception(f"[ERROR] Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred"),
    )


def register_exception_handlers(app):
    """
    Register all custom exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(ClassroomException, classroom_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
