"""Background expiry sweep for published jobs.

Runs as a single asyncio task; the filesystem work of each sweep happens in
the default thread executor so the event loop keeps serving downloads.
"""

import asyncio
from typing import Optional

from pdftools.jobs.index import JobIndex
from pdftools.jobs.models import Clock, JobRecord, utcnow
from pdftools.logging_config import logger
from pdftools.storage.artifacts import ArtifactStore


def reap_job(record: JobRecord, index: JobIndex, store: ArtifactStore) -> None:
    """Delete a job's artifact, then its inputs, then its index record.

    Artifact first: a crash in between leaves a record pointing at nothing
    (a 404), never a record that looks valid over deleted data.
    """
    store.delete(record.output_path)
    for path in record.input_refs:
        store.delete(path)
    index.delete(record.id)


class ExpirySweeper:
    """Periodically removes every job whose expires_at has passed."""

    def __init__(
        self,
        index: JobIndex,
        store: ArtifactStore,
        interval_seconds: float = 60,
        staging_max_age_seconds: float = 3600,
        clock: Clock = utcnow,
    ):
        self._index = index
        self._store = store
        self._interval = interval_seconds
        self._staging_max_age = staging_max_age_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def sweep_once(self) -> int:
        """Reap expired jobs. Returns how many were removed."""
        now = self._clock()
        removed = 0
        for record in self._index.list_all():
            if not record.is_expired(now):
                continue
            try:
                reap_job(record, self._index, self._store)
                removed += 1
            except Exception:
                logger.exception(f"[Sweeper] Failed to reap job {record.id}")

        try:
            stale = self._store.cleanup_staging(self._staging_max_age)
            if stale:
                logger.info(f"[Sweeper] Removed {stale} stale staging file(s)")
        except OSError:
            logger.exception("[Sweeper] Staging cleanup failed")

        if removed:
            logger.info(f"[Sweeper] Reaped {removed} expired job(s)")
        return removed

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self._interval)
            except asyncio.CancelledError:
                break

            try:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self.sweep_once)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("[Sweeper] Sweep failed")
