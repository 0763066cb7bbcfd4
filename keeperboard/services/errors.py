from __future__ import annotations


class KeeperboardError(Exception):
    """Base class for leaderboard engine failures."""


class InvalidCadence(KeeperboardError, ValueError):
    """Raised when a cadence cannot be used for period arithmetic."""

    def __init__(self, cadence: object):
        self.cadence = cadence
        super().__init__(f"Unsupported reset cadence: {cadence!r}")


class InvalidVersionRange(KeeperboardError):
    """Raised when a historical lookup asks for a version that does not exist yet."""

    def __init__(self, target_version: int, current_version: int, oldest_version: int | None = None):
        self.target_version = target_version
        self.current_version = current_version
        self.oldest_version = oldest_version
        if oldest_version is None:
            message = (
                f"Version {target_version} is greater than current version {current_version}"
            )
        else:
            message = (
                f"Invalid version {target_version}. "
                f"Available versions: {oldest_version} to {current_version}"
            )
        super().__init__(message)


class StoreUnavailable(KeeperboardError):
    """Raised when the epoch or score store cannot be read or written."""


class ReapFailure(KeeperboardError):
    """Raised by the store when old versions could not be deleted."""


class LeaderboardNotFound(KeeperboardError):
    def __init__(self, leaderboard_id: str):
        self.leaderboard_id = leaderboard_id
        super().__init__(f"Leaderboard {leaderboard_id!r} not found")


class LeaderboardExists(KeeperboardError):
    def __init__(self, leaderboard_id: str):
        self.leaderboard_id = leaderboard_id
        super().__init__(f"Leaderboard {leaderboard_id!r} already exists")
