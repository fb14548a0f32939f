"""
Batch Endpoint

POST /api/batch-process - Run several images through the pipeline. Each
image gets its own result entry; one failing image does not fail the
request.
"""

from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, UploadFile

from pixelpipe.api.dependencies import get_batch_coordinator, get_settings, read_upload
from pixelpipe.core.config import Settings
from pixelpipe.core.exceptions import (
    FILE_FIELD_MESSAGES,
    MissingFileError,
    NoOperationSelectedError,
    PayloadTooLargeError,
)
from pixelpipe.pipeline.batch import BatchCoordinator
from pixelpipe.pipeline.schemas import BatchItemResult, BatchResponse, ProcessingFlags, UploadedImage

router = APIRouter()


@router.post("/batch-process", response_model=BatchResponse, response_model_exclude_none=True)
async def batch_process(
    images: Optional[List[UploadFile]] = File(None),
    upscale: Optional[str] = Form(None),
    remove_background: Optional[str] = Form(None, alias="removeBackground"),
    coordinator: BatchCoordinator = Depends(get_batch_coordinator),
    settings: Settings = Depends(get_settings)
):
    """
    Process multiple images with the same options.

    Successful entries carry the PNG as a base64 data URL in ``data``;
    failed entries carry ``error``. An image over the upload limit fails on
    its own entry.
    """
    if not images:
        raise MissingFileError(FILE_FIELD_MESSAGES["images"])

    flags = ProcessingFlags.from_form(upscale, remove_background)
    if not flags.any_requested:
        raise NoOperationSelectedError()

    results: List[Optional[BatchItemResult]] = [None] * len(images)
    accepted: List[Tuple[int, UploadedImage]] = []
    for index, image in enumerate(images):
        try:
            accepted.append((index, await read_upload(image, settings.MAX_UPLOAD_SIZE_BYTES)))
        except PayloadTooLargeError as e:
            results[index] = coordinator.reject(e.filename, e)

    processed = await coordinator.process_batch([item for _, item in accepted], flags)
    for (index, _), result in zip(accepted, processed):
        results[index] = result

    return BatchResponse(results=results)
