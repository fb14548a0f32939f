"""
Global Exception Handling

Provides the exception taxonomy of the service and the FastAPI handlers
that turn it into structured JSON error responses.
"""

import traceback
from pathlib import Path
from typing import Optional, Dict, Any
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pixelpipe.core.logging import get_logger, job_id_var

logger = get_logger(__name__)

GENERIC_PROCESSING_MESSAGE = "Failed to process image"
UNSUPPORTED_FORMAT_MESSAGE = "Unsupported file format. Please upload JPG or PNG."
INVALID_REQUEST_MESSAGE = "Invalid request"

# Multipart fields that must carry files, and the error for each
FILE_FIELD_MESSAGES = {
    "image": "No image file uploaded",
    "images": "No image files uploaded",
}


def format_size(num_bytes: int) -> str:
    """Human-readable size, e.g. ``50MB``, ``1.5KB`` or ``16 bytes``."""
    for unit, size in (("MB", 1024 * 1024), ("KB", 1024)):
        if num_bytes >= size:
            return f"{round(num_bytes / size, 1):g}{unit}"
    return f"{num_bytes} bytes"


# =============================================================================
# Custom Exceptions
# =============================================================================

class PixelPipeException(Exception):
    """Base exception for PixelPipe."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.job_id = job_id or job_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)

    @property
    def public_message(self) -> str:
        """Message that is safe to return to clients."""
        return self.message


class ValidationError(PixelPipeException):
    """Raised when input validation fails."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=400, **kwargs)


class MissingFileError(ValidationError):
    """Raised when a request carries no image file."""

    def __init__(self, message: str = "No image file uploaded", **kwargs):
        super().__init__(message, **kwargs)


class UnsupportedFormatError(ValidationError):
    """Raised when the uploaded file is not a JPG or PNG."""

    def __init__(self, extension: str, **kwargs):
        super().__init__(UNSUPPORTED_FORMAT_MESSAGE, **kwargs)
        self.details["extension"] = extension


class NoOperationSelectedError(ValidationError):
    """Raised when neither upscaling nor background removal was requested."""

    def __init__(self, message: str = "No processing option selected", **kwargs):
        super().__init__(message, **kwargs)


class PayloadTooLargeError(PixelPipeException):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, filename: str, limit_bytes: int, **kwargs):
        super().__init__(
            f"File '{filename}' exceeds the maximum upload size of {format_size(limit_bytes)}",
            code=413,
            **kwargs
        )
        self.filename = filename
        self.details["limit_bytes"] = limit_bytes


class ProcessingError(PixelPipeException):
    """Raised when a pipeline stage fails.

    The original exception is kept on ``cause`` (and chained with
    ``raise ... from``) for logging; clients only ever see the generic message.
    """

    def __init__(self, stage: str, cause: Optional[BaseException] = None, **kwargs):
        message = f"Stage '{stage}' failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, code=500, stage=stage, **kwargs)
        self.cause = cause
        if cause is not None:
            self.details["error_type"] = type(cause).__name__

    @property
    def public_message(self) -> str:
        return GENERIC_PROCESSING_MESSAGE


class SweepItemError(PixelPipeException):
    """Raised when a single file cannot be inspected or deleted during a sweep."""

    def __init__(self, path: Path, cause: OSError, **kwargs):
        super().__init__(f"Could not reclaim {path}: {cause}", code=500, **kwargs)
        self.path = path
        self.cause = cause


# =============================================================================
# Exception Handlers
# =============================================================================

def error_body(message: str, code: int, job_id: Optional[str] = None) -> Dict[str, Any]:
    return {"error": message, "code": code, "job_id": job_id}


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(PixelPipeException)
    async def pixelpipe_exception_handler(request: Request, exc: PixelPipeException):
        job_id = exc.job_id or job_id_var.get()

        log = logger.warning if exc.code < 500 else logger.error
        log(
            "request_failed",
            error=exc.message,
            code=exc.code,
            stage=exc.stage,
            details=exc.details,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=exc.code,
            content=error_body(exc.public_message, exc.code, job_id)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        # A text value where a file is expected counts as a missing file
        message = INVALID_REQUEST_MESSAGE
        for error in exc.errors():
            fields = [loc for loc in error.get("loc", ()) if loc in FILE_FIELD_MESSAGES]
            if fields:
                message = FILE_FIELD_MESSAGES[fields[0]]
                break

        logger.warning(
            "request_validation_failed",
            error=message,
            errors=[error.get("msg") for error in exc.errors()],
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=400,
            content=error_body(message, 400, job_id_var.get())
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        job_id = job_id_var.get()

        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", 500, job_id)
        )
