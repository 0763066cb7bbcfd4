from __future__ import annotations

from typing import Any

from keeperboard.services.errors import (
    InvalidCadence,
    InvalidVersionRange,
    KeeperboardError,
    LeaderboardExists,
    LeaderboardNotFound,
    StoreUnavailable,
)


class APIError(Exception):
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


def from_domain_error(exc: KeeperboardError) -> APIError:
    if isinstance(exc, InvalidVersionRange):
        details = {"current_version": exc.current_version}
        if exc.oldest_version is not None:
            details["oldest_version"] = exc.oldest_version
        return APIError(code="INVALID_VERSION", message=str(exc), status_code=400, details=details)
    if isinstance(exc, LeaderboardNotFound):
        return APIError(code="LEADERBOARD_NOT_FOUND", message=str(exc), status_code=404)
    if isinstance(exc, LeaderboardExists):
        return APIError(code="LEADERBOARD_EXISTS", message=str(exc), status_code=409)
    if isinstance(exc, StoreUnavailable):
        return APIError(code="STORE_UNAVAILABLE", message="Leaderboard store is unavailable", status_code=503)
    if isinstance(exc, InvalidCadence):
        return APIError(code="INVALID_CADENCE", message=str(exc), status_code=500)
    return APIError(code="INTERNAL_ERROR", message="Leaderboard operation failed", status_code=500)
