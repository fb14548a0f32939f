"""
Request/Response Schemas for the processing pipeline.
"""

from pathlib import PurePath
from typing import List, Optional

from pydantic import BaseModel, Field


class ProcessingFlags(BaseModel):
    """Operations requested for an image."""
    upscale: bool = False
    remove_background: bool = False

    @classmethod
    def from_form(cls, upscale: Optional[str], remove_background: Optional[str]) -> "ProcessingFlags":
        """Form fields enable an operation only with the exact string "true"."""
        return cls(
            upscale=upscale == "true",
            remove_background=remove_background == "true"
        )

    @property
    def any_requested(self) -> bool:
        return self.upscale or self.remove_background


class UploadedImage(BaseModel):
    """One uploaded source image held in memory."""
    filename: str
    data: bytes = Field(repr=False)

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower()


class ProcessingRequest(BaseModel):
    """A source image plus the operations to run on it."""
    image: UploadedImage
    flags: ProcessingFlags


class BatchItemResult(BaseModel):
    """Outcome for one item of a batch."""
    filename: str
    success: bool
    data: Optional[str] = Field(default=None, description="PNG as a base64 data URL")
    error: Optional[str] = None


class BatchResponse(BaseModel):
    results: List[BatchItemResult]


class HealthResponse(BaseModel):
    status: str = "ok"
