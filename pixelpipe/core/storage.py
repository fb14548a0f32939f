"""
Storage Layout - Working Directories

The three working directories (upload, output, temp) are the handoff
surface between pipeline stages. There is no database: every file is
transient and either deleted by its owner or reclaimed by the cleanup sweep.

Files are written through a ``.part`` sibling and renamed into place, so a
path that exists is always a complete artifact.
"""

import os
import uuid
from pathlib import Path
from typing import Iterable, List, Optional

from pixelpipe.core.config import Settings
from pixelpipe.core.logging import get_logger

logger = get_logger(__name__)

PART_SUFFIX = ".part"


class StorageLayout:
    """Resolves WorkItem artifact paths inside the working directories."""

    def __init__(self, upload_dir: Path, output_dir: Path, temp_dir: Path):
        self.upload_dir = Path(upload_dir)
        self.output_dir = Path(output_dir)
        self.temp_dir = Path(temp_dir)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageLayout":
        return cls(settings.UPLOAD_DIR, settings.OUTPUT_DIR, settings.TEMP_DIR)

    @property
    def directories(self) -> List[Path]:
        return [self.upload_dir, self.output_dir, self.temp_dir]

    def ensure(self):
        """Create the working directories if they don't exist."""
        for directory in self.directories:
            directory.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    @staticmethod
    def new_work_id() -> str:
        """Generate a collision-free id for one WorkItem."""
        return uuid.uuid4().hex

    def upload_path(self, work_id: str, extension: str) -> Path:
        return self.upload_dir / f"{work_id}{extension}"

    def normalized_path(self, work_id: str) -> Path:
        return self.upload_dir / f"{work_id}.png"

    def upscaled_path(self, work_id: str) -> Path:
        return self.temp_dir / f"{work_id}_upscaled.png"

    def output_path(self, work_id: str) -> Path:
        return self.output_dir / f"{work_id}.png"

    # -------------------------------------------------------------------------
    # File operations (blocking; callers run them in a worker thread)
    # -------------------------------------------------------------------------

    @staticmethod
    def write_atomic(path: Path, data: bytes) -> Path:
        """Write ``data`` to ``path`` so that readers never see a partial file."""
        part = path.with_name(path.name + PART_SUFFIX)
        try:
            with open(part, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(part, path)
        except BaseException:
            part.unlink(missing_ok=True)
            raise
        return path

    def save_upload(self, work_id: str, extension: str, data: bytes) -> Path:
        """Persist raw upload bytes for a new WorkItem."""
        return self.write_atomic(self.upload_path(work_id, extension), data)

    @staticmethod
    def discard(path: Optional[Path]) -> bool:
        """Delete a file, treating an already missing file as success.

        Returns True when the file was removed by this call.
        """
        if path is None:
            return False
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            # The sweep reclaims whatever is left behind
            logger.warning("discard_failed", path=str(path), error=str(e))
            return False

    def discard_all(self, paths: Iterable[Optional[Path]]):
        for path in paths:
            self.discard(path)
