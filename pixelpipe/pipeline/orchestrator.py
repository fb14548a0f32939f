"""
Pipeline Orchestrator

Runs one uploaded image through the stages selected by its flags:

    upload -> normalize (jpg/jpeg only) -> [upscale] -> [remove_background] -> output

Upscaling always runs before background removal so segmentation works on
the delivered resolution. Each superseded artifact is deleted as soon as the
next one is on disk. On failure every artifact of the WorkItem is deleted
before the error propagates.
"""

import asyncio
from pathlib import Path
from typing import List, Optional

from pixelpipe.core.exceptions import (
    NoOperationSelectedError,
    ProcessingError,
    UnsupportedFormatError,
)
from pixelpipe.core.logging import LogContext, get_logger
from pixelpipe.core.metrics import record_job_completion, track_active_job
from pixelpipe.core.storage import StorageLayout
from pixelpipe.engines import Collaborators
from pixelpipe.pipeline import stages
from pixelpipe.pipeline.schemas import ProcessingFlags, ProcessingRequest

logger = get_logger(__name__)

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png"}
NORMALIZED_EXTENSIONS = {".jpg", ".jpeg"}

STAGE_UPLOAD = "upload"
STAGE_HANDOFF = "handoff"


class WorkItem:
    """The chain of artifacts produced for one image."""

    def __init__(self, work_id: str, upload_path: Path):
        self.work_id = work_id
        self.upload_path = upload_path
        self.normalized_path: Optional[Path] = None
        self.upscaled_path: Optional[Path] = None
        self.output_path: Optional[Path] = None

    @property
    def paths(self) -> List[Path]:
        chain = [self.upload_path, self.normalized_path, self.upscaled_path, self.output_path]
        return list(dict.fromkeys(p for p in chain if p is not None))


class ImagePipeline:
    """Sequences the stage adapters and owns the intermediate files."""

    def __init__(self, storage: StorageLayout, collaborators: Collaborators):
        self.storage = storage
        self.collaborators = collaborators

    async def run(self, request: ProcessingRequest) -> bytes:
        """Save the upload under a fresh id, process it and hand back the PNG."""
        if not request.flags.any_requested:
            raise NoOperationSelectedError()

        extension = request.image.extension
        # Nothing is written for an unsupported name, however long its suffix
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFormatError(extension)

        work_id = self.storage.new_work_id()

        with LogContext(job_id=work_id):
            logger.info(
                "image_received",
                filename=request.image.filename,
                size_bytes=len(request.image.data),
                upscale=request.flags.upscale,
                remove_background=request.flags.remove_background
            )
            try:
                source_path = await asyncio.to_thread(
                    self.storage.save_upload, work_id, extension, request.image.data
                )
            except OSError as e:
                raise ProcessingError(STAGE_UPLOAD, cause=e) from e

            output_path = await self.process(source_path, extension, request.flags)
            return await self.take_artifact(output_path)

    async def process(self, source_path: Path, extension: str, flags: ProcessingFlags) -> Path:
        """
        Run the selected stages on an uploaded file.

        The upload at ``source_path`` becomes owned by the pipeline and is
        always consumed. Returns the final PNG, which the caller must hand to
        ``take_artifact``.

        Raises:
            UnsupportedFormatError: extension is not jpg/jpeg/png
            NoOperationSelectedError: flags request nothing
            ProcessingError: a stage failed
        """
        extension = extension.lower()
        work = WorkItem(source_path.stem, source_path)

        with LogContext(job_id=work.work_id):
            if extension not in SUPPORTED_EXTENSIONS:
                self.storage.discard(source_path)
                raise UnsupportedFormatError(extension)
            if not flags.any_requested:
                self.storage.discard(source_path)
                raise NoOperationSelectedError()

            with track_active_job():
                try:
                    output_path = await self._run_stages(work, extension, flags)
                except Exception as e:
                    self.storage.discard_all(work.paths)
                    stage = e.stage if isinstance(e, ProcessingError) else "unknown"
                    record_job_completion("failed", failure_stage=stage)
                    logger.error(
                        "pipeline_failed",
                        stage=stage,
                        error=str(e),
                        error_type=type(e).__name__
                    )
                    raise

            record_job_completion("completed")
            logger.info("pipeline_completed", output_path=str(output_path))
            return output_path

    async def _run_stages(self, work: WorkItem, extension: str, flags: ProcessingFlags) -> Path:
        # Targets are recorded on the WorkItem before each stage starts so a
        # failure can remove whatever the stage left behind.
        storage = self.storage
        current = work.upload_path

        if extension in NORMALIZED_EXTENSIONS:
            work.normalized_path = storage.normalized_path(work.work_id)
            produced = await stages.normalize(
                self.collaborators.codec, current, work.normalized_path
            )
            current = self._supersede(current, produced)
        else:
            work.normalized_path = current

        if flags.upscale:
            if flags.remove_background:
                work.upscaled_path = target = storage.upscaled_path(work.work_id)
            else:
                work.output_path = target = storage.output_path(work.work_id)
            produced = await stages.upscale(self.collaborators.upscaler, current, target)
            current = self._supersede(current, produced)

        if flags.remove_background:
            work.output_path = storage.output_path(work.work_id)
            produced = await stages.remove_background(
                self.collaborators.background_remover, current, work.output_path
            )
            current = self._supersede(current, produced)

        return current

    def _supersede(self, old: Path, new: Path) -> Path:
        """Delete ``old`` now that ``new`` is on disk."""
        if old != new:
            self.storage.discard(old)
        return new

    async def take_artifact(self, output_path: Path) -> bytes:
        """Read the final artifact into memory and delete it, whatever happens."""
        try:
            return await asyncio.to_thread(output_path.read_bytes)
        except OSError as e:
            raise ProcessingError(STAGE_HANDOFF, cause=e) from e
        finally:
            self.storage.discard(output_path)
