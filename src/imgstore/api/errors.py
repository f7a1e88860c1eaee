"""imgstore API error handling.

Global exception handlers:
- StoreHttpError: Application-specific errors with structured envelope
- BlobStoreError: Storage taxonomy mapped to HTTP statuses
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (generic 500, no internals)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from imgstore.api.error_model import get_error_code_for_status, make_error_response
from imgstore.config import ALLOWED_EXTENSIONS
from imgstore.storage.errors import (
    BlobNotFoundError,
    BlobStoreError,
    InconsistentStateError,
    InvalidTypeError,
    TooLargeError,
    WriteFailedError,
)

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal error occurred"


class StoreHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 404, 500).
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


async def store_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for StoreHttpError."""
    assert isinstance(exc, StoreHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def blob_store_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map storage errors to client or server responses.

    Client errors (type, size, not found) carry a specific code. Every other
    storage failure is answered with a generic 500; the cause is logged but
    never echoed, since it may contain physical paths.
    """
    assert isinstance(exc, BlobStoreError)

    if isinstance(exc, InvalidTypeError):
        return make_error_response(
            request,
            code="INVALID_TYPE",
            message="File is of the wrong type",
            http_status=415,
            details={"allowed_extensions": sorted(ALLOWED_EXTENSIONS)},
        )

    if isinstance(exc, TooLargeError):
        return make_error_response(
            request,
            code="TOO_LARGE",
            message="File is too large",
            http_status=413,
            details={"max_size_bytes": exc.max_size_bytes} if exc.max_size_bytes else None,
        )

    if isinstance(exc, BlobNotFoundError):
        return make_error_response(
            request,
            code="NOT_FOUND",
            message="Blob not found",
            http_status=404,
        )

    request_id = getattr(request.state, "request_id", None)

    if isinstance(exc, WriteFailedError):
        logger.error(
            "Blob write failed: %s",
            exc.cause or exc.message,
            extra={"request_id": request_id},
        )
        return make_error_response(
            request,
            code="WRITE_FAILED",
            message="The upload could not be stored",
            http_status=500,
        )

    if isinstance(exc, InconsistentStateError):
        logger.error(
            "Storage left inconsistent: %s stored_name=%s",
            exc,
            exc.stored_name,
            extra={"request_id": request_id},
        )
    else:
        logger.error("Storage failure: %s", exc, extra={"request_id": request_id})

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message=INTERNAL_ERROR_MESSAGE,
        http_status=500,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError.

    Only field names and messages are reported, never the submitted values.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=422,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message=INTERNAL_ERROR_MESSAGE,
        http_status=500,
    )
