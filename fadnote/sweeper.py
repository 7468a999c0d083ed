"""
Expiry Sweeper — periodic removal of expired notes.

Only needed for backends without native TTL (filesystem, memory). Runs
once at startup and then every ``interval`` seconds until stopped. Runs
never overlap, and a failure on one note or in one pass does not stop the
next. Lazy expiry in the backends still applies whether or not a sweep ran.
"""
import asyncio
import logging
from typing import Optional

from .storage.abstract import NoteStorage

logger = logging.getLogger("fadnote.sweeper")


class ExpirySweeper:
    """Background task deleting notes past their expiry."""

    def __init__(self, storage: NoteStorage, interval: float = 3600):
        self.storage = storage
        self.interval = interval
        self._run_lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return not self.storage.native_ttl

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Run one sweep pass.

        Returns:
            Number of notes deleted. 0 if a pass is already in progress.
        """
        if not self.enabled:
            return 0
        if self._run_lock.locked():
            logger.debug("Sweep already in progress, skipping")
            return 0
        async with self._run_lock:
            deleted = 0
            for note_id in await self.storage.list_ids():
                try:
                    if await self.storage.purge_if_expired(note_id):
                        deleted += 1
                except Exception as err:
                    logger.error("Failed to sweep note=%s: %s", note_id, err)
            if deleted:
                logger.info("Cleaned up %d expired note(s)", deleted)
            await self._reclaim_orphans()
            return deleted

    async def _reclaim_orphans(self) -> None:
        reclaim = getattr(self.storage, "reclaim_orphans", None)
        if reclaim is None:
            return
        try:
            await reclaim()
        except Exception as err:
            logger.error("Failed to reclaim orphaned files: %s", err)

    async def _loop(self) -> None:
        logger.info(
            "Expiry sweeper started for %s storage (every %ss)",
            self.storage.name, self.interval,
        )
        while not self._shutdown.is_set():
            try:
                await self.run_once()
            except Exception as err:
                logger.error("Error in expiry sweep: %s", err, exc_info=True)
            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
        logger.info("Expiry sweeper stopped")

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""
        if not self.enabled:
            logger.info(
                "Storage %s expires notes natively; sweeper not started",
                self.storage.name,
            )
            return
        if self.running:
            return
        self._shutdown.clear()
        self._task = asyncio.create_task(self._loop(), name="fadnote-expiry-sweeper")

    async def stop(self) -> None:
        """Signal the loop to exit and wait for the current pass to finish."""
        if self._task is None:
            return
        self._shutdown.set()
        try:
            await self._task
        finally:
            self._task = None
