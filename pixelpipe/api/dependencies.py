"""
FastAPI Dependencies

Services are built once by the application lifespan and stored on
``app.state``; these functions hand them to the route handlers.
"""

from fastapi import Request, UploadFile

from pixelpipe.core.config import Settings
from pixelpipe.core.exceptions import PayloadTooLargeError
from pixelpipe.pipeline.batch import BatchCoordinator
from pixelpipe.pipeline.orchestrator import ImagePipeline
from pixelpipe.pipeline.schemas import UploadedImage


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> ImagePipeline:
    """Returns the process-wide pipeline."""
    return request.app.state.pipeline


def get_batch_coordinator(request: Request) -> BatchCoordinator:
    return request.app.state.batch_coordinator


async def read_upload(file: UploadFile, limit_bytes: int) -> UploadedImage:
    """Read an uploaded file into memory, enforcing the size limit."""
    filename = file.filename or ""
    data = await file.read(limit_bytes + 1)
    if len(data) > limit_bytes:
        raise PayloadTooLargeError(filename, limit_bytes)
    return UploadedImage(filename=filename, data=data)
