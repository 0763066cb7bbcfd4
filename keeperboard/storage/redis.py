"""Redis client creation and the Redis-backed epoch store."""

from __future__ import annotations

import os
from datetime import datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError

from keeperboard.services.errors import InvalidCadence, ReapFailure, StoreUnavailable
from keeperboard.services.periods import Cadence
from keeperboard.services.versions import EpochState

DEFAULT_REDIS_URL = "redis://localhost:6379/0"

# Creates the epoch hash only if the leaderboard does not exist yet.
_LUA_CREATE_EPOCH = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
redis.call('HSET', KEYS[1],
    'reset_cadence', ARGV[1],
    'reset_hour', ARGV[2],
    'current_version', ARGV[3],
    'current_period_start', ARGV[4])
return 1
"""

# Advances the epoch only while the stored version still equals the one the caller read.
_LUA_COMPARE_AND_SET_EPOCH = """
if redis.call('HGET', KEYS[1], 'current_version') ~= ARGV[1] then
    return 0
end
redis.call('HSET', KEYS[1], 'current_version', ARGV[2], 'current_period_start', ARGV[3])
return 1
"""


def get_redis_url() -> str:
    return os.getenv("REDIS_URL", DEFAULT_REDIS_URL)


def create_redis_client(redis_url: str | None = None) -> Redis:
    return Redis.from_url(redis_url or get_redis_url(), decode_responses=True)


def epoch_key(leaderboard_id: str) -> str:
    return f"lb:{leaderboard_id}:epoch"


def versions_key(leaderboard_id: str) -> str:
    return f"lb:{leaderboard_id}:versions"


def scores_key(leaderboard_id: str, version: int) -> str:
    return f"lb:{leaderboard_id}:v{version}"


def _decode_epoch(leaderboard_id: str, raw: dict[str, str]) -> EpochState:
    start = raw.get("current_period_start") or None
    try:
        cadence = Cadence(raw.get("reset_cadence"))
    except ValueError as exc:
        raise InvalidCadence(raw.get("reset_cadence")) from exc
    return EpochState(
        leaderboard_id=leaderboard_id,
        reset_cadence=cadence,
        reset_hour=int(raw["reset_hour"]),
        current_version=int(raw["current_version"]),
        current_period_start=datetime.fromisoformat(start) if start else None,
    )


class RedisEpochStore:
    """Persists one epoch hash per leaderboard and one sorted set per score version."""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def create_epoch(self, epoch: EpochState) -> bool:
        start = epoch.current_period_start.isoformat() if epoch.current_period_start else ""
        try:
            created = await self.redis.eval(  # type: ignore[misc]
                _LUA_CREATE_EPOCH,
                1,
                epoch_key(epoch.leaderboard_id),
                epoch.reset_cadence.value,
                epoch.reset_hour,
                epoch.current_version,
                start,
            )
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to create epoch for {epoch.leaderboard_id!r}") from exc
        return bool(created)

    async def read_epoch(self, leaderboard_id: str) -> EpochState | None:
        try:
            raw = await self.redis.hgetall(epoch_key(leaderboard_id))
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to read epoch for {leaderboard_id!r}") from exc
        if not raw:
            return None
        return _decode_epoch(leaderboard_id, raw)

    async def compare_and_set_epoch(
        self,
        leaderboard_id: str,
        expected_version: int,
        new_version: int,
        new_period_start: datetime,
    ) -> bool:
        try:
            updated = await self.redis.eval(  # type: ignore[misc]
                _LUA_COMPARE_AND_SET_EPOCH,
                1,
                epoch_key(leaderboard_id),
                str(expected_version),
                new_version,
                new_period_start.isoformat(),
            )
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to advance epoch for {leaderboard_id!r}") from exc
        return bool(updated)

    async def delete_scores_before(self, leaderboard_id: str, cutoff: int) -> int:
        """Drop every score version below ``cutoff`` and return how many were dropped."""
        index = versions_key(leaderboard_id)
        try:
            stale = await self.redis.zrangebyscore(index, "-inf", f"({cutoff}")
            if not stale:
                return 0
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.delete(*(scores_key(leaderboard_id, int(v)) for v in stale))
                pipe.zremrangebyscore(index, "-inf", f"({cutoff}")
                await pipe.execute()
        except RedisError as exc:
            raise ReapFailure(f"Failed to purge versions for {leaderboard_id!r}") from exc
        return len(stale)

    async def delete_leaderboard(self, leaderboard_id: str) -> bool:
        index = versions_key(leaderboard_id)
        try:
            versions = await self.redis.zrange(index, 0, -1)
            keys = [epoch_key(leaderboard_id), index]
            keys.extend(scores_key(leaderboard_id, int(v)) for v in versions)
            removed = await self.redis.delete(*keys)
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to delete leaderboard {leaderboard_id!r}") from exc
        return removed > 0

    async def oldest_version(self, leaderboard_id: str) -> int | None:
        try:
            rows = await self.redis.zrange(versions_key(leaderboard_id), 0, 0, withscores=True)
        except RedisError as exc:
            raise StoreUnavailable(f"Failed to read versions for {leaderboard_id!r}") from exc
        if not rows:
            return None
        return int(rows[0][1])

    async def ping(self) -> bool:
        response = await self.redis.ping()
        return bool(response)
