"""
Collaborator Interfaces

The image algorithms are black boxes behind these three narrow contracts.
Implementations are blocking; the stage adapters call them from a worker
thread.
"""

from abc import ABC, abstractmethod
from pathlib import Path


class IImageCodec(ABC):
    """Re-encodes image bytes into another container format."""

    @abstractmethod
    def convert(self, data: bytes, target_format: str) -> bytes:
        """
        Convert encoded image bytes.

        Args:
            data: Encoded source image (JPEG, PNG, ...)
            target_format: Pillow format name, e.g. "PNG"

        Returns:
            The image encoded in ``target_format``
        """


class IUpscaler(ABC):
    """Super-resolution model with a path-in/path-out contract."""

    scale: int = 4

    @abstractmethod
    def upscale(self, input_path: Path, output_path: Path) -> Path:
        """
        Upscale the PNG at ``input_path`` and write a PNG to ``output_path``.

        Returns:
            ``output_path`` once it is completely written
        """


class IBackgroundRemover(ABC):
    """Segmentation model that makes the background transparent."""

    @abstractmethod
    def remove(self, data: bytes) -> bytes:
        """
        Remove the background of a PNG.

        Returns:
            PNG bytes with an alpha channel
        """
