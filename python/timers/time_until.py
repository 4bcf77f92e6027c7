"""
Conversion of "when" descriptors into millisecond delays.

A descriptor names a future point in time in one of three ways, checked in
priority order: an explicit millisecond offset, a daily time of day, or an
absolute datetime.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Optional


class TimeInMS(IntEnum):
    """Common durations in milliseconds."""

    SECOND = 1000
    MINUTE = 60000
    HALF_HOUR = 1800000
    HOUR = 3600000
    HALF_DAY = 43200000
    DAY = 86400000
    WEEK = 604800000
    FOUR_SCORE = 1209600000  # 14 days
    MONTH = 2592000000


@dataclass(frozen=True)
class TimeOfDay:
    """Wall-clock time of day, resolved against the current calendar day."""

    hour: int
    minute: int = 0
    seconds: int = 0

    def __post_init__(self):
        self._validate_field("hour", self.hour, 0, 23)
        self._validate_field("minute", self.minute, 0, 59)
        self._validate_field("seconds", self.seconds, 0, 59)

    @staticmethod
    def _validate_field(field_name: str, value: int, min_val: int, max_val: int):
        if not min_val <= value <= max_val:
            raise ValueError(
                f"Invalid {field_name} value: {value} (must be {min_val}-{max_val})"
            )


@dataclass(frozen=True)
class TimeUntil:
    """
    Describes a future point in time.

    Only one field is meaningful at a time. A non-zero ``ms`` always wins;
    otherwise ``time_of_day`` is used, then ``date``. With nothing set the
    descriptor means "now".
    """

    ms: Optional[int] = None
    date: Optional[datetime] = None
    time_of_day: Optional[TimeOfDay] = None


def _now_like(target: datetime, now: datetime) -> datetime:
    # Aware and naive datetimes cannot be subtracted from each other
    if target.tzinfo is not None and now.tzinfo is None:
        return now.astimezone()
    if target.tzinfo is None and now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def delay_until(target: datetime, now: Optional[datetime] = None) -> int:
    """
    Milliseconds from ``now`` until ``target``; negative when target is past.

    Naive datetimes are taken as local time. Going through ``timestamp()``
    keeps the result in real elapsed milliseconds across DST changes.
    """
    if now is None:
        now = datetime.now()
    now = _now_like(target, now)
    return round((target.timestamp() - now.timestamp()) * 1000)


def resolve_delay(when: TimeUntil, now: Optional[datetime] = None) -> int:
    """
    Resolve a descriptor into a delay in milliseconds from ``now``.

    Args:
        when: The descriptor to resolve
        now: Current instant; defaults to ``datetime.now()``

    Returns:
        Delay in milliseconds. May be zero or negative; hosts fire such
        timers as soon as they can.
    """
    # ms == 0 deliberately falls through to the calendar branches
    if when.ms:
        return when.ms

    if now is None:
        now = datetime.now()

    if when.time_of_day is not None:
        tod = when.time_of_day
        target = now.replace(
            hour=tod.hour, minute=tod.minute, second=tod.seconds, microsecond=0
        )
        if not target > now:
            # Calendar-day increment; wall-clock time is kept across DST
            target = target + timedelta(days=1)
    elif when.date is not None:
        target = when.date
    else:
        return 0

    return delay_until(target, now)
