from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import parse_ts


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture()
def daily_board(client, clock):
    api, redis_client, game_id = client
    board_id = f"{game_id}_daily"
    response = api.post(f"/v1/games/{board_id}/leaderboard", json={"reset_cadence": "daily", "reset_hour": 0})
    assert response.status_code == 201
    return api, redis_client, board_id


def post_score(api, board_id: str, user_id: str, score: int):
    response = api.post(f"/v1/games/{board_id}/scores", json={"user_id": user_id, "score": score})
    assert response.status_code == 200
    return response.json()


def test_created_leaderboard_starts_at_version_one(client, clock):
    api, _, game_id = client
    response = api.post(
        f"/v1/games/{game_id}_weekly/leaderboard",
        json={"reset_cadence": "weekly", "reset_hour": 6},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["version"] == 1
    # 2026-02-08 is a Sunday, so the week began on Monday 2026-02-02.
    assert parse_ts(body["period_start"]) == utc(2026, 2, 2, 6)
    assert parse_ts(body["next_reset"]) == utc(2026, 2, 9, 6)


def test_daily_leaderboard_rolls_over_lazily(daily_board, clock):
    api, _, board_id = daily_board

    first = api.get(f"/v1/games/{board_id}/epoch").json()
    assert first["version"] == 1
    assert parse_ts(first["period_start"]) == utc(2026, 2, 8)

    clock.set(utc(2026, 2, 9))
    second = api.get(f"/v1/games/{board_id}/epoch").json()
    assert second["version"] == 2
    assert parse_ts(second["period_start"]) == utc(2026, 2, 9)
    assert parse_ts(second["next_reset"]) == utc(2026, 2, 10)

    clock.set(utc(2026, 2, 12, 5))
    third = api.get(f"/v1/games/{board_id}/epoch").json()
    assert third["version"] == 5
    assert parse_ts(third["period_start"]) == utc(2026, 2, 12)


def test_scores_are_stamped_with_the_active_version(daily_board, clock):
    api, redis_client, board_id = daily_board

    assert post_score(api, board_id, "alice", 100)["version"] == 1
    clock.set(utc(2026, 2, 9, 8))
    assert post_score(api, board_id, "bob", 50)["version"] == 2

    current = api.get(f"/v1/games/{board_id}/leaderboard").json()
    assert current["version"] == 2
    assert current["oldest_version"] == 1
    assert parse_ts(current["next_reset"]) == utc(2026, 2, 10)
    assert [row["user_id"] for row in current["results"]] == ["bob"]

    previous = api.get(f"/v1/games/{board_id}/leaderboard", params={"version": 1}).json()
    assert previous["version"] == 1
    assert [row["user_id"] for row in previous["results"]] == ["alice"]

    context = api.get(f"/v1/games/{board_id}/users/alice/context", params={"version": 1}).json()
    assert context["version"] == 1
    assert context["user"]["rank"] == 1
    assert api.get(f"/v1/games/{board_id}/users/alice/context").status_code == 404

    assert redis_client.zscore(f"lb:{board_id}:v1", "alice") == 100


def test_future_version_is_rejected(daily_board, clock):
    api, _, board_id = daily_board

    response = api.get(f"/v1/games/{board_id}/leaderboard", params={"version": 2})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "INVALID_VERSION"
    assert error["details"]["current_version"] == 1


def test_retention_purges_old_versions_but_keeps_their_periods(daily_board, clock):
    api, redis_client, board_id = daily_board

    post_score(api, board_id, "alice", 100)
    clock.set(utc(2026, 2, 9, 1))
    post_score(api, board_id, "bob", 50)

    # Three idle days: version 5 with a retention window of 3 keeps versions 2 and up.
    clock.set(utc(2026, 2, 12, 5))
    current = api.get(f"/v1/games/{board_id}/leaderboard").json()
    assert current["version"] == 5
    assert current["oldest_version"] == 2
    assert not redis_client.exists(f"lb:{board_id}:v1")

    purged = api.get(f"/v1/games/{board_id}/leaderboard", params={"version": 1})
    assert purged.status_code == 400
    assert purged.json()["error"]["details"]["oldest_version"] == 2

    kept = api.get(f"/v1/games/{board_id}/leaderboard", params={"version": 2}).json()
    assert [row["user_id"] for row in kept["results"]] == ["bob"]

    period = api.get(f"/v1/games/{board_id}/versions/1").json()
    assert parse_ts(period["period_start"]) == utc(2026, 2, 8)
    assert parse_ts(period["period_end"]) == utc(2026, 2, 9)


def test_version_period_lookup(daily_board, clock):
    api, _, board_id = daily_board
    clock.set(utc(2026, 2, 12, 5))

    period = api.get(f"/v1/games/{board_id}/versions/3").json()
    assert period["version"] == 3
    assert parse_ts(period["period_start"]) == utc(2026, 2, 10)

    future = api.get(f"/v1/games/{board_id}/versions/6")
    assert future.status_code == 400
    assert future.json()["error"]["code"] == "INVALID_VERSION"


def test_all_time_leaderboard_never_advances(client, clock):
    api, _, game_id = client
    clock.set(utc(2027, 3, 1, 12))

    epoch = api.get(f"/v1/games/{game_id}/epoch").json()
    assert epoch["version"] == 1
    assert epoch["period_start"] is None
    assert epoch["next_reset"] is None

    assert api.get(f"/v1/games/{game_id}/versions/1").json()["period_start"] is None
    assert api.get(f"/v1/games/{game_id}/versions/2").status_code == 400
