from __future__ import annotations

import asyncio
import os
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi.testclient import TestClient
from redis import Redis

from keeperboard.config import Settings
from keeperboard.main import create_app
from keeperboard.services.errors import StoreUnavailable
from keeperboard.services.periods import Cadence
from keeperboard.storage.redis import RedisEpochStore

START = datetime(2026, 2, 8, 10, 0, tzinfo=timezone.utc)


def parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryEpochStore:
    """Epoch store double that yields to the event loop before every operation."""

    def __init__(self):
        self.epochs = {}
        self.commits = 0
        self.reads = 0
        self.purges: list[tuple[str, int]] = []
        self.purge_error: Exception | None = None

    def put(self, epoch):
        self.epochs[epoch.leaderboard_id] = epoch

    async def read_epoch(self, leaderboard_id):
        await asyncio.sleep(0)
        self.reads += 1
        return self.epochs.get(leaderboard_id)

    async def compare_and_set_epoch(self, leaderboard_id, expected_version, new_version, new_period_start):
        await asyncio.sleep(0)
        current = self.epochs.get(leaderboard_id)
        if current is None or current.current_version != expected_version:
            return False
        self.epochs[leaderboard_id] = replace(
            current,
            current_version=new_version,
            current_period_start=new_period_start,
        )
        self.commits += 1
        return True

    async def delete_scores_before(self, leaderboard_id, cutoff):
        await asyncio.sleep(0)
        if self.purge_error is not None:
            raise self.purge_error
        self.purges.append((leaderboard_id, cutoff))
        return cutoff - 1


class UnreachableEpochStore(InMemoryEpochStore):
    async def read_epoch(self, leaderboard_id):
        raise StoreUnavailable("epoch store offline")


@pytest.fixture()
def memory_store() -> InMemoryEpochStore:
    return InMemoryEpochStore()


@pytest.fixture(scope="session")
def redis_url() -> str:
    return os.getenv("REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture()
def sync_redis(redis_url: str):
    redis_client = Redis.from_url(redis_url, decode_responses=True)
    yield redis_client
    redis_client.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(redis_url: str) -> Settings:
    return Settings(
        redis_url=redis_url,
        retention={Cadence.DAILY: 3, Cadence.WEEKLY: 12, Cadence.MONTHLY: 12},
        reap_in_background=False,
    )


@pytest.fixture()
def client(sync_redis: Redis, settings: Settings, clock: FakeClock):
    app = create_app(settings, clock=clock)

    game_id = f"testgame_{uuid.uuid4().hex}"

    with TestClient(app) as test_client:
        created = test_client.post(f"/v1/games/{game_id}/leaderboard", json={"reset_cadence": "none"})
        assert created.status_code == 201
        yield test_client, sync_redis, game_id

    for key in sync_redis.scan_iter(match=f"lb:{game_id}*"):
        sync_redis.delete(key)


@pytest.fixture()
def fake_server() -> FakeServer:
    return FakeServer()


@pytest.fixture()
def redis_store(fake_server: FakeServer) -> RedisEpochStore:
    return RedisEpochStore(FakeAsyncRedis(server=fake_server, decode_responses=True))
