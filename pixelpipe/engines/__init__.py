"""
Image Engines

External collaborators used by the pipeline stages:
- Codec: Pillow format conversion
- Upscaler: Real-ESRGAN 4x (or Lanczos resampling)
- Background remover: rembg
"""

from typing import NamedTuple

from pixelpipe.core.config import Settings
from pixelpipe.engines.base import IImageCodec, IUpscaler, IBackgroundRemover
from pixelpipe.engines.codec import PillowCodec
from pixelpipe.engines.upscaler import LanczosUpscaler, RealESRGANUpscaler
from pixelpipe.engines.background import RembgBackgroundRemover


class Collaborators(NamedTuple):
    codec: IImageCodec
    upscaler: IUpscaler
    background_remover: IBackgroundRemover


def build_upscaler(settings: Settings) -> IUpscaler:
    backend = settings.UPSCALE_BACKEND.lower()
    if backend == "realesrgan":
        return RealESRGANUpscaler(
            model_path=settings.REALESRGAN_MODEL_PATH,
            scale=settings.UPSCALE_FACTOR,
            tile_size=settings.TILE_SIZE
        )
    if backend == "lanczos":
        return LanczosUpscaler(scale=settings.UPSCALE_FACTOR)
    raise ValueError(f"Unknown UPSCALE_BACKEND: {settings.UPSCALE_BACKEND!r}")


def build_collaborators(settings: Settings) -> Collaborators:
    """Create the collaborators selected by configuration."""
    return Collaborators(
        codec=PillowCodec(),
        upscaler=build_upscaler(settings),
        background_remover=RembgBackgroundRemover(settings.REMBG_MODEL)
    )


__all__ = [
    "Collaborators",
    "IImageCodec",
    "IUpscaler",
    "IBackgroundRemover",
    "PillowCodec",
    "LanczosUpscaler",
    "RealESRGANUpscaler",
    "RembgBackgroundRemover",
    "build_collaborators",
    "build_upscaler",
]
