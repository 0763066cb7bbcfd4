"""Period boundary arithmetic for leaderboards that reset on a fixed cadence.

Every function here is pure and works in UTC. Boundaries are inclusive on the
lower side: an instant equal to a boundary belongs to the period starting there.
Cadence ``none`` has no periods and is rejected; callers short-circuit first.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING

from keeperboard.services.errors import InvalidCadence, InvalidVersionRange

if TYPE_CHECKING:
    from keeperboard.services.versions import EpochState


class Cadence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


FIXED_LENGTHS: dict[Cadence, timedelta] = {
    Cadence.DAILY: timedelta(days=1),
    Cadence.WEEKLY: timedelta(days=7),
}


def as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def periodic_cadence(cadence: Cadence | str) -> Cadence:
    """Coerce ``cadence`` and reject anything that has no period arithmetic."""
    try:
        value = Cadence(cadence)
    except ValueError as exc:
        raise InvalidCadence(cadence) from exc
    if value is Cadence.NONE:
        raise InvalidCadence(cadence)
    return value


def add_months(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) + months
    year, month_zero = divmod(index, 12)
    month = month_zero + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_start(cadence: Cadence | str, reset_hour: int, at: datetime) -> datetime:
    """Return the boundary of the period containing ``at``."""
    cadence = periodic_cadence(cadence)
    at = as_utc(at)

    if cadence is Cadence.DAILY:
        boundary = at.replace(hour=reset_hour, minute=0, second=0, microsecond=0)
        if at < boundary:
            boundary -= timedelta(days=1)
        return boundary

    if cadence is Cadence.WEEKLY:
        monday = at.date() - timedelta(days=at.weekday())
        boundary = datetime(monday.year, monday.month, monday.day, reset_hour, tzinfo=timezone.utc)
        if at < boundary:
            boundary -= timedelta(days=7)
        return boundary

    boundary = datetime(at.year, at.month, 1, reset_hour, tzinfo=timezone.utc)
    if at < boundary:
        boundary = add_months(boundary, -1)
    return boundary


def next_reset(cadence: Cadence | str, reset_hour: int, start: datetime) -> datetime:
    """Return the boundary of the period following the one starting at ``start``."""
    cadence = periodic_cadence(cadence)
    start = as_utc(start)

    if cadence in FIXED_LENGTHS:
        return start + FIXED_LENGTHS[cadence]

    following = add_months(start.replace(day=1), 1)
    return following.replace(hour=reset_hour, minute=0, second=0, microsecond=0)


def periods_between(cadence: Cadence | str, reset_hour: int, start: datetime, now: datetime) -> int:
    """Count whole periods elapsed between the boundary ``start`` and ``now``.

    Equivalent to advancing ``start`` with :func:`next_reset` until the result
    is later than ``now`` and counting the steps, without walking every period.
    """
    cadence = periodic_cadence(cadence)
    start = as_utc(start)
    now = as_utc(now)
    if now < start:
        return 0

    if cadence in FIXED_LENGTHS:
        return (now - start) // FIXED_LENGTHS[cadence]

    months = (now.year * 12 + now.month) - (start.year * 12 + start.month)
    first = start.replace(day=1, hour=reset_hour, minute=0, second=0, microsecond=0)
    if add_months(first, months) > now:
        months -= 1
    return max(months, 0)


def period_start_for_version(epoch: EpochState, target_version: int) -> datetime:
    """Return the boundary at which ``target_version`` started.

    Walks back ``current_version - target_version`` cadence units from the
    current period start.
    """
    cadence = periodic_cadence(epoch.reset_cadence)
    if target_version > epoch.current_version or target_version < 1:
        raise InvalidVersionRange(target_version, epoch.current_version)

    current_start = as_utc(epoch.current_period_start)
    steps = epoch.current_version - target_version
    if steps == 0:
        return current_start

    if cadence in FIXED_LENGTHS:
        return current_start - FIXED_LENGTHS[cadence] * steps
    return add_months(current_start, -steps)
