"""
Upscaler Collaborators

RealESRGANUpscaler runs the x4plus super-resolution model with tiled
processing for VRAM limits. LanczosUpscaler is a plain resampler selected
with UPSCALE_BACKEND=lanczos for hosts without the model stack.
"""

import io
import threading
from contextlib import contextmanager
from pathlib import Path

from PIL import Image

from pixelpipe.core.logging import get_logger
from pixelpipe.core.storage import StorageLayout
from pixelpipe.engines.base import IUpscaler

logger = get_logger(__name__)


def _encode_png(image: Image.Image) -> bytes:
    output_buffer = io.BytesIO()
    image.save(output_buffer, format="PNG")
    return output_buffer.getvalue()


class LanczosUpscaler(IUpscaler):
    """Resamples with Pillow's Lanczos filter."""

    def __init__(self, scale: int = 4):
        self.scale = scale

    def upscale(self, input_path: Path, output_path: Path) -> Path:
        with Image.open(input_path) as image:
            mode = "RGBA" if "A" in image.getbands() else "RGB"
            source = image.convert(mode)
            new_size = (source.width * self.scale, source.height * self.scale)
            with source.resize(new_size, Image.Resampling.LANCZOS) as upscaled:
                data = _encode_png(upscaled)

        return StorageLayout.write_atomic(output_path, data)


class RealESRGANUpscaler(IUpscaler):
    """
    Real-ESRGAN x4plus upscaler.

    The network is loaded on first use and kept for the lifetime of the
    instance. Calls are serialized because the upsampler holds GPU state.
    """

    def __init__(self, model_path: str, scale: int = 4, tile_size: int = 512):
        self.model_path = model_path
        self.scale = scale
        self.tile_size = tile_size
        self._upsampler = None
        self._lock = threading.Lock()

    def _load(self):
        import torch
        from basicsr.archs.rrdbnet_arch import RRDBNet
        from realesrgan import RealESRGANer

        device = "cuda" if torch.cuda.is_available() else "cpu"
        model = RRDBNet(
            num_in_ch=3,
            num_out_ch=3,
            num_feat=64,
            num_block=23,
            num_grow_ch=32,
            scale=self.scale
        )
        upsampler = RealESRGANer(
            scale=self.scale,
            model_path=self.model_path,
            model=model,
            tile=self.tile_size,
            tile_pad=10,
            pre_pad=0,
            half=device == "cuda"  # Use FP16 on GPU
        )
        logger.info("realesrgan_loaded", device=device, tile_size=self.tile_size)
        return upsampler

    @contextmanager
    def _acquire(self):
        """Hold the upsampler and release cached GPU buffers on exit."""
        import torch

        with self._lock:
            if self._upsampler is None:
                self._upsampler = self._load()
            try:
                yield self._upsampler
            finally:
                if torch.cuda.is_available():
                    torch.cuda.empty_cache()

    def upscale(self, input_path: Path, output_path: Path) -> Path:
        import numpy as np

        with Image.open(input_path) as image:
            rgb = np.array(image.convert("RGB"))

        with self._acquire() as upsampler:
            # RealESRGANer works on BGR arrays
            output_bgr, _ = upsampler.enhance(rgb[:, :, ::-1], outscale=self.scale)

        with Image.fromarray(np.ascontiguousarray(output_bgr[:, :, ::-1])) as upscaled:
            data = _encode_png(upscaled)

        return StorageLayout.write_atomic(output_path, data)
