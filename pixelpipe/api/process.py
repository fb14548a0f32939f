"""
Process Endpoint - Single Image

POST /api/process-image - Run one image through the pipeline and return
the resulting PNG.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response

from pixelpipe.api.dependencies import get_pipeline, get_settings, read_upload
from pixelpipe.core.config import Settings
from pixelpipe.core.exceptions import MissingFileError, NoOperationSelectedError
from pixelpipe.pipeline.orchestrator import ImagePipeline
from pixelpipe.pipeline.schemas import ProcessingFlags, ProcessingRequest

router = APIRouter()


@router.post(
    "/process-image",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}, "description": "Processed PNG"}}
)
async def process_image(
    image: Optional[UploadFile] = File(None),
    upscale: Optional[str] = Form(None),
    remove_background: Optional[str] = Form(None, alias="removeBackground"),
    pipeline: ImagePipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings)
):
    """
    Upscale and/or remove the background of one image.

    Form fields ``upscale`` and ``removeBackground`` enable a stage with the
    value "true". When both are set the image is upscaled first.
    """
    if image is None:
        raise MissingFileError()

    flags = ProcessingFlags.from_form(upscale, remove_background)
    if not flags.any_requested:
        raise NoOperationSelectedError()

    uploaded = await read_upload(image, settings.MAX_UPLOAD_SIZE_BYTES)
    png_bytes = await pipeline.run(ProcessingRequest(image=uploaded, flags=flags))

    return Response(content=png_bytes, media_type="image/png")
