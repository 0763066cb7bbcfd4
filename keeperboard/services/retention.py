"""Best-effort deletion of score data for versions past the retention window."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Protocol

from keeperboard.services.errors import ReapFailure, StoreUnavailable
from keeperboard.services.periods import Cadence

logger = logging.getLogger(__name__)

DEFAULT_RETENTION: dict[Cadence, int] = {
    Cadence.DAILY: 30,
    Cadence.WEEKLY: 12,
    Cadence.MONTHLY: 12,
}


class VersionPurger(Protocol):
    async def delete_scores_before(self, leaderboard_id: str, cutoff: int) -> int: ...


class RetentionReaper:
    def __init__(
        self,
        store: VersionPurger,
        retention: Mapping[Cadence, int] | None = None,
        background: bool = True,
    ):
        self.store = store
        self.retention = dict(DEFAULT_RETENTION if retention is None else retention)
        self.background = background
        self._tasks: set[asyncio.Task[int]] = set()

    def cutoff(self, new_version: int, cadence: Cadence) -> int | None:
        """Return the oldest version to keep, or ``None`` when nothing is reclaimable."""
        window = self.retention.get(Cadence(cadence))
        if not window:
            return None
        oldest_kept = new_version - window
        if oldest_kept <= 1:
            return None
        return oldest_kept

    async def reap(self, leaderboard_id: str, new_version: int, cadence: Cadence) -> int:
        cutoff = self.cutoff(new_version, cadence)
        if cutoff is None:
            return 0

        try:
            deleted = await self.store.delete_scores_before(leaderboard_id, cutoff)
        except (StoreUnavailable, ReapFailure):
            # The next rollover recomputes the same cutoff and catches up.
            logger.warning(
                "Retention cleanup failed",
                exc_info=True,
                extra={"leaderboard_id": leaderboard_id, "cutoff_version": cutoff},
            )
            return 0

        logger.info(
            "Retention cleanup removed versions older than %d",
            cutoff,
            extra={"leaderboard_id": leaderboard_id, "deleted_versions": deleted},
        )
        return deleted

    async def trigger(self, leaderboard_id: str, new_version: int, cadence: Cadence) -> None:
        """Run :meth:`reap` inline or as a detached task, depending on ``background``."""
        if not self.background:
            await self.reap(leaderboard_id, new_version, cadence)
            return

        task = asyncio.create_task(self.reap(leaderboard_id, new_version, cadence))
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[int]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background retention cleanup crashed", exc_info=exc)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
