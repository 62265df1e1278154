"""Expiry sweeper for finished jobs and orphaned temp files."""

import asyncio
import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from framereader.services.job_store import JobStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodically removes expired jobs and stale temp artifacts.

    The two sweeps are independent: a temp file with no job record is still
    reclaimed, and a job is removed whether or not its files still exist.
    """

    def __init__(
        self,
        store: JobStore,
        temp_dir: str,
        expiry_seconds: float = 30 * 60,
        interval_seconds: float = 5 * 60,
    ) -> None:
        self.store = store
        self.temp_dir = Path(temp_dir)
        self.expiry = timedelta(seconds=expiry_seconds)
        self.interval_seconds = interval_seconds
        self._task: Optional["asyncio.Task[None]"] = None

    def sweep_jobs(self, now: Optional[datetime] = None) -> int:
        return self.store.sweep_expired(self.expiry, now)

    def sweep_temp_files(self, now: Optional[datetime] = None) -> int:
        """Delete temp entries whose mtime is older than the expiry window."""
        if not self.temp_dir.is_dir():
            return 0

        cutoff = (now or datetime.now(timezone.utc)).timestamp() - self.expiry.total_seconds()
        cleaned = 0

        for entry in self.temp_dir.iterdir():
            try:
                if entry.stat().st_mtime >= cutoff:
                    continue
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                cleaned += 1
            except FileNotFoundError:
                # Removed concurrently by a job's own cleanup.
                continue
            except OSError as e:
                logger.warning(f"Could not remove temp entry {entry}: {e}")

        if cleaned:
            logger.info(f"Cleaned {cleaned} temp files")
        return cleaned

    def sweep_once(self, now: Optional[datetime] = None) -> tuple[int, int]:
        """Run both sweeps. Returns (jobs removed, temp entries removed)."""
        return self.sweep_jobs(now), self.sweep_temp_files(now)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Expiry sweep failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(
                self._loop(), name="expiry-sweeper"
            )
            logger.info(
                f"Expiry sweeper started (every {self.interval_seconds}s, "
                f"expiry {self.expiry.total_seconds()}s)"
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
