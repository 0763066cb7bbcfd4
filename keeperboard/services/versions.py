"""Lazy version resolution for leaderboards with a reset cadence.

There is no scheduler. Whichever request first observes that the active period
has elapsed advances the epoch, guarded by a compare-and-swap on
``current_version`` so that concurrent callers converge on a single winner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Mapping, Protocol, Union

from keeperboard.services.errors import InvalidCadence, LeaderboardNotFound
from keeperboard.services.periods import (
    Cadence,
    as_utc,
    next_reset,
    period_start,
    periods_between,
)
from keeperboard.services.retention import RetentionReaper

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EpochState:
    leaderboard_id: str
    reset_cadence: Cadence
    reset_hour: int
    current_version: int = 1
    current_period_start: datetime | None = None


@dataclass(frozen=True, slots=True)
class ResolvedEpoch:
    version: int
    period_start: datetime | None
    next_reset: datetime | None


ALL_TIME = ResolvedEpoch(version=1, period_start=None, next_reset=None)


@dataclass(frozen=True, slots=True)
class Won:
    state: EpochState


@dataclass(frozen=True, slots=True)
class LostToConcurrent:
    current: EpochState


CommitOutcome = Union[Won, LostToConcurrent]


class EpochStore(Protocol):
    async def read_epoch(self, leaderboard_id: str) -> EpochState | None: ...

    async def compare_and_set_epoch(
        self,
        leaderboard_id: str,
        expected_version: int,
        new_version: int,
        new_period_start: datetime,
    ) -> bool: ...

    async def delete_scores_before(self, leaderboard_id: str, cutoff: int) -> int: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def initial_epoch(
    leaderboard_id: str,
    reset_cadence: Cadence | str,
    reset_hour: int,
    created_at: datetime,
) -> EpochState:
    """Build the version 1 epoch for a leaderboard created at ``created_at``."""
    try:
        cadence = Cadence(reset_cadence)
    except ValueError as exc:
        raise InvalidCadence(reset_cadence) from exc
    if not 0 <= reset_hour <= 23:
        raise ValueError(f"reset_hour must be between 0 and 23, got {reset_hour}")

    start = None
    if cadence is not Cadence.NONE:
        start = period_start(cadence, reset_hour, created_at)
    return EpochState(
        leaderboard_id=leaderboard_id,
        reset_cadence=cadence,
        reset_hour=reset_hour,
        current_version=1,
        current_period_start=start,
    )


def describe(state: EpochState) -> ResolvedEpoch:
    if state.reset_cadence is Cadence.NONE:
        return ALL_TIME
    start = as_utc(state.current_period_start)
    return ResolvedEpoch(
        version=state.current_version,
        period_start=start,
        next_reset=next_reset(state.reset_cadence, state.reset_hour, start),
    )


class VersionResolver:
    def __init__(
        self,
        store: EpochStore,
        reaper: RetentionReaper,
        long_gap_periods: Mapping[Cadence, int] | None = None,
    ):
        self.store = store
        self.reaper = reaper
        self.long_gap_periods = dict(long_gap_periods or {})

    async def resolve_for(self, leaderboard_id: str, now: datetime | None = None) -> tuple[EpochState, ResolvedEpoch]:
        """Read the stored epoch, resolve it, and return both the effective state and the result."""
        epoch = await self.store.read_epoch(leaderboard_id)
        if epoch is None:
            raise LeaderboardNotFound(leaderboard_id)
        resolved = await self.resolve(epoch, now)
        if epoch.reset_cadence is Cadence.NONE:
            return epoch, resolved
        current = replace(
            epoch,
            current_version=resolved.version,
            current_period_start=resolved.period_start,
        )
        return current, resolved

    async def resolve(self, epoch: EpochState, now: datetime | None = None) -> ResolvedEpoch:
        if epoch.reset_cadence is Cadence.NONE:
            return ALL_TIME

        now = as_utc(now) if now is not None else utcnow()
        cadence = epoch.reset_cadence
        start = as_utc(epoch.current_period_start)
        boundary = next_reset(cadence, epoch.reset_hour, start)

        if now < boundary:
            return ResolvedEpoch(version=epoch.current_version, period_start=start, next_reset=boundary)

        elapsed = periods_between(cadence, epoch.reset_hour, start, now)
        new_version = epoch.current_version + elapsed
        new_start = period_start(cadence, epoch.reset_hour, now)

        outcome = await self.commit(epoch, new_version, new_start)
        if isinstance(outcome, LostToConcurrent):
            logger.debug(
                "Leaderboard rollover lost to concurrent caller",
                extra={
                    "leaderboard_id": epoch.leaderboard_id,
                    "attempted_version": new_version,
                    "current_version": outcome.current.current_version,
                },
            )
            return describe(outcome.current)

        logger.info(
            "Leaderboard rolled over",
            extra={
                "leaderboard_id": epoch.leaderboard_id,
                "from_version": epoch.current_version,
                "to_version": new_version,
                "period_start": new_start.isoformat(),
            },
        )
        threshold = self.long_gap_periods.get(cadence)
        if threshold and elapsed > threshold:
            logger.warning(
                "Leaderboard idle for %d %s periods before rollover",
                elapsed,
                cadence.value,
                extra={"leaderboard_id": epoch.leaderboard_id, "elapsed_periods": elapsed},
            )

        await self.reaper.trigger(epoch.leaderboard_id, new_version, cadence)
        return describe(outcome.state)

    async def commit(self, epoch: EpochState, new_version: int, new_start: datetime) -> CommitOutcome:
        won = await self.store.compare_and_set_epoch(
            epoch.leaderboard_id,
            expected_version=epoch.current_version,
            new_version=new_version,
            new_period_start=new_start,
        )
        if won:
            return Won(replace(epoch, current_version=new_version, current_period_start=new_start))

        current = await self.store.read_epoch(epoch.leaderboard_id)
        if current is None:
            raise LeaderboardNotFound(epoch.leaderboard_id)
        return LostToConcurrent(current)
