"""
Batch Coordinator

Runs the pipeline once per uploaded image. Items are processed concurrently
up to a fixed bound; results come back in input order and a failing item
only produces a ``success: false`` entry.
"""

import asyncio
import base64
from typing import List, Sequence

from pixelpipe.core.exceptions import (
    GENERIC_PROCESSING_MESSAGE,
    NoOperationSelectedError,
    PixelPipeException,
)
from pixelpipe.core.logging import get_logger
from pixelpipe.core.metrics import record_batch_item
from pixelpipe.pipeline.orchestrator import ImagePipeline
from pixelpipe.pipeline.schemas import (
    BatchItemResult,
    ProcessingFlags,
    ProcessingRequest,
    UploadedImage,
)

logger = get_logger(__name__)


def to_data_url(png_bytes: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


class BatchCoordinator:

    def __init__(self, pipeline: ImagePipeline, concurrency: int = 4):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.pipeline = pipeline
        self.concurrency = concurrency

    async def process_batch(
        self,
        items: Sequence[UploadedImage],
        flags: ProcessingFlags
    ) -> List[BatchItemResult]:
        """Process every item and return one result per item, in input order."""
        if not flags.any_requested:
            raise NoOperationSelectedError()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(item: UploadedImage) -> BatchItemResult:
            async with semaphore:
                return await self._process_item(item, flags)

        logger.info("batch_started", items=len(items), concurrency=self.concurrency)
        results = await asyncio.gather(*(_bounded(item) for item in items))

        succeeded = sum(1 for r in results if r.success)
        logger.info("batch_completed", items=len(results), succeeded=succeeded)
        return list(results)

    def reject(self, filename: str, error: PixelPipeException) -> BatchItemResult:
        """Failed result for an item that never reached the pipeline."""
        logger.warning(
            "batch_item_rejected",
            filename=filename,
            error=error.message,
            code=error.code
        )
        record_batch_item(False)
        return BatchItemResult(filename=filename, success=False, error=error.public_message)

    async def _process_item(self, item: UploadedImage, flags: ProcessingFlags) -> BatchItemResult:
        try:
            png_bytes = await self.pipeline.run(ProcessingRequest(image=item, flags=flags))
        except PixelPipeException as e:
            logger.warning(
                "batch_item_failed",
                filename=item.filename,
                error=e.message,
                stage=e.stage,
                job_id=e.job_id
            )
            record_batch_item(False)
            return BatchItemResult(filename=item.filename, success=False, error=e.public_message)
        except Exception as e:
            logger.error(
                "batch_item_failed",
                filename=item.filename,
                error=str(e),
                error_type=type(e).__name__
            )
            record_batch_item(False)
            return BatchItemResult(
                filename=item.filename,
                success=False,
                error=GENERIC_PROCESSING_MESSAGE
            )

        record_batch_item(True)
        return BatchItemResult(filename=item.filename, success=True, data=to_data_url(png_bytes))
