"""Leaderboard operations backed by Redis sorted sets, one set per version."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from redis.asyncio import Redis

from keeperboard.services.errors import InvalidVersionRange, LeaderboardExists, LeaderboardNotFound
from keeperboard.services.periods import Cadence, next_reset, period_start_for_version
from keeperboard.services.versions import (
    EpochState,
    ResolvedEpoch,
    VersionResolver,
    initial_epoch,
    utcnow,
)
from keeperboard.storage.redis import RedisEpochStore, scores_key, versions_key


@dataclass(slots=True)
class RankedUser:
    rank: int
    user_id: str
    score: int


@dataclass(slots=True)
class SubmittedScore:
    rank: int
    user_id: str
    score: int
    version: int


@dataclass(slots=True)
class VersionInfo:
    reset_cadence: Cadence
    version: int
    current_version: int
    oldest_version: int
    period_start: datetime | None
    next_reset: datetime | None


@dataclass(slots=True)
class LeaderboardPage:
    info: VersionInfo
    rows: list[RankedUser]


@dataclass(slots=True)
class UserContextResult:
    user: RankedUser
    above: list[RankedUser]
    below: list[RankedUser]
    version: int


@dataclass(slots=True)
class VersionPeriod:
    version: int
    period_start: datetime | None
    period_end: datetime | None


class UserNotFoundError(Exception):
    """Raised when a user has no score for a leaderboard version."""


class LeaderboardService:
    def __init__(
        self,
        redis_client: Redis,
        store: RedisEpochStore,
        resolver: VersionResolver,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis = redis_client
        self.store = store
        self.resolver = resolver
        self.clock = clock

    async def create_leaderboard(
        self,
        game_id: str,
        reset_cadence: Cadence | str,
        reset_hour: int = 0,
    ) -> tuple[EpochState, ResolvedEpoch]:
        epoch = initial_epoch(game_id, reset_cadence, reset_hour, self.clock())
        if not await self.store.create_epoch(epoch):
            raise LeaderboardExists(game_id)
        return await self.resolver.resolve_for(game_id, self.clock())

    async def delete_leaderboard(self, game_id: str) -> None:
        if not await self.store.delete_leaderboard(game_id):
            raise LeaderboardNotFound(game_id)

    async def current_epoch(self, game_id: str) -> tuple[EpochState, ResolvedEpoch]:
        return await self.resolver.resolve_for(game_id, self.clock())

    async def submit_score(
        self,
        game_id: str,
        user_id: str,
        score: int,
        mode: str = "best",
    ) -> SubmittedScore:
        _, resolved = await self.current_epoch(game_id)
        key = scores_key(game_id, resolved.version)

        if mode == "latest":
            await self.redis.zadd(key, {user_id: score})
        else:
            current = await self.redis.zscore(key, user_id)
            if current is None or score > int(current):
                await self.redis.zadd(key, {user_id: score})
        await self.redis.zadd(versions_key(game_id), {str(resolved.version): resolved.version})

        applied_score = await self.redis.zscore(key, user_id)
        if applied_score is None:
            raise RuntimeError("Score write/read inconsistency")
        return SubmittedScore(
            rank=await self.rank_of(key, applied_score),
            user_id=user_id,
            score=int(applied_score),
            version=resolved.version,
        )

    async def version_info(self, game_id: str, version: int | None = None) -> VersionInfo:
        """Resolve the current epoch and validate ``version`` against what is still stored."""
        epoch, resolved = await self.current_epoch(game_id)
        if epoch.reset_cadence is Cadence.NONE:
            return VersionInfo(
                reset_cadence=Cadence.NONE,
                version=1,
                current_version=1,
                oldest_version=1,
                period_start=None,
                next_reset=None,
            )

        oldest = await self.store.oldest_version(game_id)
        if oldest is None or oldest > resolved.version:
            oldest = resolved.version
        target = resolved.version if version is None else version
        if target < oldest or target > resolved.version:
            raise InvalidVersionRange(target, resolved.version, oldest)

        start = period_start_for_version(epoch, target)
        return VersionInfo(
            reset_cadence=epoch.reset_cadence,
            version=target,
            current_version=resolved.version,
            oldest_version=oldest,
            period_start=start,
            next_reset=resolved.next_reset,
        )

    async def get_version_period(self, game_id: str, version: int) -> VersionPeriod:
        """Return the period bounds of ``version``, even when its scores were purged."""
        epoch, _ = await self.current_epoch(game_id)
        if epoch.reset_cadence is Cadence.NONE:
            if version != 1:
                raise InvalidVersionRange(version, 1)
            return VersionPeriod(version=1, period_start=None, period_end=None)

        start = period_start_for_version(epoch, version)
        return VersionPeriod(
            version=version,
            period_start=start,
            period_end=next_reset(epoch.reset_cadence, epoch.reset_hour, start),
        )

    async def get_leaderboard(
        self,
        game_id: str,
        limit: int,
        offset: int,
        version: int | None = None,
    ) -> LeaderboardPage:
        info = await self.version_info(game_id, version)
        key = scores_key(game_id, info.version)
        end = offset + limit - 1
        rows = await self.redis.zrevrange(key, offset, end, withscores=True)
        results: list[RankedUser] = []
        for user_id, score in rows:
            results.append(RankedUser(rank=await self.rank_of(key, score), user_id=user_id, score=int(score)))
        return LeaderboardPage(info=info, rows=results)

    async def rank_of(self, key: str, score: float) -> int:
        """One plus the number of strictly greater scores, so ties share a rank."""
        higher = await self.redis.zcount(key, f"({score}", "+inf")
        return int(higher) + 1

    async def total_count(self, game_id: str, version: int) -> int:
        return int(await self.redis.zcard(scores_key(game_id, version)))

    async def get_user_context(
        self,
        game_id: str,
        user_id: str,
        window: int,
        version: int | None = None,
    ) -> UserContextResult:
        info = await self.version_info(game_id, version)
        key = scores_key(game_id, info.version)

        # Zero-based position in score order; picks the neighbours, not the rank.
        position = await self.redis.zrevrank(key, user_id)
        user_score = await self.redis.zscore(key, user_id)
        if position is None or user_score is None:
            raise UserNotFoundError(user_id)

        above_start = max(position - window, 0)
        above_end = position - 1
        above_rows = []
        if above_end >= above_start:
            above_rows = await self.redis.zrevrange(key, above_start, above_end, withscores=True)

        below_start = position + 1
        below_end = position + window
        below_rows = await self.redis.zrevrange(key, below_start, below_end, withscores=True)

        above = [
            RankedUser(rank=await self.rank_of(key, row_score), user_id=row_user_id, score=int(row_score))
            for row_user_id, row_score in above_rows
        ]
        below = [
            RankedUser(rank=await self.rank_of(key, row_score), user_id=row_user_id, score=int(row_score))
            for row_user_id, row_score in below_rows
        ]

        return UserContextResult(
            user=RankedUser(rank=await self.rank_of(key, user_score), user_id=user_id, score=int(user_score)),
            above=above,
            below=below,
            version=info.version,
        )

    async def ping(self) -> bool:
        return await self.store.ping()
