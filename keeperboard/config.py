"""Environment-driven settings for the leaderboard service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from keeperboard.services.periods import Cadence
from keeperboard.services.retention import DEFAULT_RETENTION
from keeperboard.storage.redis import DEFAULT_REDIS_URL

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _to_int(raw: str, key_name: str, minimum: int) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid integer for {key_name}: {raw!r}") from e
    if value < minimum:
        raise RuntimeError(f"{key_name} must be >= {minimum}, got {value}")
    return value


def _env_int(key_name: str, default: int, minimum: int = 1) -> int:
    raw = (os.getenv(key_name) or "").strip()
    if not raw:
        return default
    return _to_int(raw, key_name, minimum)


def _env_bool(key_name: str, default: bool) -> bool:
    raw = (os.getenv(key_name) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise RuntimeError(f"Invalid boolean for {key_name}: {raw!r}")


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str = DEFAULT_REDIS_URL
    retention: dict[Cadence, int] = field(default_factory=lambda: dict(DEFAULT_RETENTION))
    reap_in_background: bool = True
    # 0 means "warn once the gap exceeds the retention window"
    long_gap_warning_periods: int = 0
    log_level: str = "INFO"

    @property
    def long_gap_periods(self) -> dict[Cadence, int]:
        if self.long_gap_warning_periods:
            return {cadence: self.long_gap_warning_periods for cadence in self.retention}
        return dict(self.retention)

    @classmethod
    def load(cls) -> "Settings":
        retention = {
            Cadence.DAILY: _env_int("RETENTION_DAILY", DEFAULT_RETENTION[Cadence.DAILY]),
            Cadence.WEEKLY: _env_int("RETENTION_WEEKLY", DEFAULT_RETENTION[Cadence.WEEKLY]),
            Cadence.MONTHLY: _env_int("RETENTION_MONTHLY", DEFAULT_RETENTION[Cadence.MONTHLY]),
        }
        return cls(
            redis_url=(os.getenv("REDIS_URL") or DEFAULT_REDIS_URL).strip(),
            retention=retention,
            reap_in_background=_env_bool("REAP_IN_BACKGROUND", True),
            long_gap_warning_periods=_env_int("LONG_GAP_WARNING_PERIODS", 0, minimum=0),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        )
