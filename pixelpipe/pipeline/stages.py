"""
Pipeline Stage Implementations

Each stage takes a file path in and produces a file path out. The
collaborator call and the file I/O run in a worker thread, so a stage
suspends only the task that awaits it. Any collaborator failure is raised
as ProcessingError carrying the stage name.
"""

import asyncio
from pathlib import Path
from typing import Callable, TypeVar

from pixelpipe.core.exceptions import ProcessingError
from pixelpipe.core.logging import get_logger, with_logging
from pixelpipe.core.metrics import track_stage_latency
from pixelpipe.core.storage import StorageLayout
from pixelpipe.engines.base import IImageCodec, IUpscaler, IBackgroundRemover

logger = get_logger(__name__)

STAGE_NORMALIZE = "normalize"
STAGE_UPSCALE = "upscale"
STAGE_REMOVE_BACKGROUND = "remove_background"

T = TypeVar("T")


async def _run_stage(stage: str, func: Callable[[], T]) -> T:
    with track_stage_latency(stage):
        try:
            return await asyncio.to_thread(func)
        except Exception as e:
            raise ProcessingError(stage, cause=e) from e


# =============================================================================
# Stage 1: Format Normalization
# =============================================================================

@with_logging(STAGE_NORMALIZE)
async def normalize(codec: IImageCodec, source_path: Path, target_path: Path) -> Path:
    """Re-encode ``source_path`` as PNG at ``target_path``."""

    def _convert() -> Path:
        data = source_path.read_bytes()
        return StorageLayout.write_atomic(target_path, codec.convert(data, "PNG"))

    return await _run_stage(STAGE_NORMALIZE, _convert)


# =============================================================================
# Stage 2: 4x Upscaling
# =============================================================================

@with_logging(STAGE_UPSCALE)
async def upscale(upscaler: IUpscaler, source_path: Path, target_path: Path) -> Path:
    """Upscale ``source_path`` into ``target_path``."""
    return await _run_stage(
        STAGE_UPSCALE,
        lambda: upscaler.upscale(source_path, target_path)
    )


# =============================================================================
# Stage 3: Background Removal
# =============================================================================

@with_logging(STAGE_REMOVE_BACKGROUND)
async def remove_background(
    remover: IBackgroundRemover,
    source_path: Path,
    target_path: Path
) -> Path:
    """Write a transparent-background copy of ``source_path`` to ``target_path``."""

    def _remove() -> Path:
        data = source_path.read_bytes()
        return StorageLayout.write_atomic(target_path, remover.remove(data))

    return await _run_stage(STAGE_REMOVE_BACKGROUND, _remove)
