"""
Cleanup Service - Working Directory Garbage Collection

Deletes files whose last modification is older than the configured max age.
Runs one sweep when initialized (files orphaned by a previous crash) and then
on a fixed interval as an asyncio task.

The pipeline deletes its own files concurrently, so a file that vanishes
between listing and deletion is not an error. Any other per-file failure is
logged and the sweep moves on.
"""

import asyncio
import os
import stat
import time
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel

from pixelpipe.core.config import Settings
from pixelpipe.core.exceptions import SweepItemError
from pixelpipe.core.logging import get_logger
from pixelpipe.core.metrics import (
    cleanup_failures_total,
    cleanup_files_deleted_total,
    cleanup_sweep_duration_seconds,
)

logger = get_logger(__name__)

CLEANUP_TASK_NAME = "pixelpipe-cleanup"


class SweepReport(BaseModel):
    """Counters for one sweep."""
    scanned: int = 0
    deleted: int = 0
    failed: int = 0

    def merge(self, other: "SweepReport") -> "SweepReport":
        self.scanned += other.scanned
        self.deleted += other.deleted
        self.failed += other.failed
        return self


class CleanupService:
    """
    Age-based sweeper for the working directories.

    One instance is created by the application lifespan. ``initialize`` may
    be called again after ``stop``; it always leaves exactly one scheduled
    task behind.
    """

    def __init__(
        self,
        directories: Sequence[Path],
        interval_seconds: float = 60 * 60,
        max_age_seconds: float = 24 * 60 * 60
    ):
        self.directories: List[Path] = [Path(d) for d in directories]
        self.interval_seconds = interval_seconds
        self.max_age_seconds = max_age_seconds
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CleanupService":
        return cls(
            settings.working_directories,
            interval_seconds=settings.CLEANUP_INTERVAL_SECONDS,
            max_age_seconds=settings.CLEANUP_MAX_AGE_SECONDS
        )

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self):
        """Create the directories, sweep once, then schedule the recurring sweep."""
        try:
            for directory in self.directories:
                await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)

            await self.run_cleanup()
        except Exception as e:
            logger.error("cleanup_service_init_failed", error=str(e))
            raise

        self.stop()
        self._task = asyncio.create_task(self._run_periodically(), name=CLEANUP_TASK_NAME)

        logger.info(
            "cleanup_service_initialized",
            directories=[str(d) for d in self.directories],
            interval_seconds=self.interval_seconds,
            max_age_seconds=self.max_age_seconds
        )

    def stop(self):
        """Cancel the scheduled sweep. Safe to call any number of times."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.info("cleanup_service_stopped")

    async def shutdown(self):
        """Cancel the scheduled sweep and wait for its task to finish."""
        task = self._task
        self.stop()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_periodically(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                # stop() cancels the schedule, not a sweep already running
                await asyncio.shield(self.run_cleanup())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("cleanup_sweep_failed", error=str(e), error_type=type(e).__name__)

    # -------------------------------------------------------------------------
    # Sweep
    # -------------------------------------------------------------------------

    async def run_cleanup(self) -> SweepReport:
        """Sweep every working directory once."""
        start = time.monotonic()
        report = SweepReport()

        for directory in self.directories:
            report.merge(await asyncio.to_thread(self.sweep_directory, directory))

        duration = time.monotonic() - start
        cleanup_sweep_duration_seconds.observe(duration)
        logger.info(
            "cleanup_sweep_completed",
            scanned=report.scanned,
            deleted=report.deleted,
            failed=report.failed,
            duration_ms=int(duration * 1000)
        )
        return report

    def sweep_directory(self, directory: Path, now: Optional[float] = None) -> SweepReport:
        """Delete expired files in ``directory``. Blocking."""
        now = time.time() if now is None else now
        report = SweepReport()

        try:
            names = os.listdir(directory)
        except FileNotFoundError:
            logger.warning("cleanup_directory_missing", directory=str(directory))
            return report
        except OSError as e:
            logger.error("cleanup_directory_failed", directory=str(directory), error=str(e))
            return report

        for name in names:
            path = Path(directory) / name
            report.scanned += 1
            try:
                if self._reclaim(path, now):
                    report.deleted += 1
                    cleanup_files_deleted_total.labels(directory=str(directory)).inc()
            except SweepItemError as e:
                report.failed += 1
                cleanup_failures_total.labels(directory=str(directory)).inc()
                logger.warning("cleanup_file_failed", path=str(e.path), error=str(e.cause))

        return report

    def _reclaim(self, path: Path, now: float) -> bool:
        """Delete ``path`` if it is a regular file older than the max age."""
        try:
            st = os.stat(path)
            if not stat.S_ISREG(st.st_mode):
                return False
            age = now - st.st_mtime
            if age <= self.max_age_seconds:
                return False
            os.unlink(path)
        except FileNotFoundError:
            # Deleted by its owner in the meantime
            return False
        except OSError as e:
            raise SweepItemError(path, e) from e

        logger.info("cleanup_file_deleted", path=str(path), age_seconds=int(age))
        return True
