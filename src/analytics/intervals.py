"""Interval and calendar granularity resolution.

Trend intervals (``15min``, ``1hour``...) become a bucket width in minutes.
Rollup granularities (``hour``, ``day``, ``week``, ``month``) become a
calendar bucket key.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum

logger = logging.getLogger(__name__)

INTERVAL_MINUTES: dict[str, int] = {
    "15min": 15,
    "30min": 30,
    "1hour": 60,
    "4hour": 240,
    "1day": 1440,
}

DEFAULT_INTERVAL_MINUTES = 60


class Granularity(str, Enum):
    """Calendar unit used by historical rollups."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


def interval_to_minutes(interval: str) -> int:
    """Map an interval token to a bucket width in minutes.

    Args:
        interval: Token such as ``15min`` or ``1hour``. Case-insensitive.

    Returns:
        Width in minutes. Unknown tokens fall back to 60.
    """
    minutes = INTERVAL_MINUTES.get((interval or "").strip().lower())
    if minutes is None:
        logger.debug("Unknown interval %r, using %d minutes", interval, DEFAULT_INTERVAL_MINUTES)
        return DEFAULT_INTERVAL_MINUTES
    return minutes


def resolve_granularity(token: str, strict: bool = False) -> Granularity:
    """Map a granularity token to a Granularity.

    Args:
        token: ``hour``, ``day``, ``week`` or ``month``. Case-insensitive.
        strict: Raise on unknown tokens instead of falling back to hourly.

    Returns:
        The resolved Granularity.

    Raises:
        ValueError: If ``strict`` and the token is unknown.
    """
    try:
        return Granularity((token or "").strip().lower())
    except ValueError:
        if strict:
            choices = ", ".join(g.value for g in Granularity)
            raise ValueError(
                f"Unknown granularity '{token}', expected one of: {choices}"
            ) from None
        return Granularity.HOUR


def round_to_interval(timestamp: datetime, minutes: int) -> datetime:
    """Floor a timestamp to the start of its interval bucket.

    The timestamp is truncated to the top of its hour and the minute of the
    hour is floored to a multiple of ``minutes``. Alignment restarts every
    hour, so any width of 60 minutes or more yields hourly buckets.

    Args:
        timestamp: Time to round.
        minutes: Bucket width in minutes, must be positive.

    Returns:
        Start of the bucket containing ``timestamp``.
    """
    if minutes <= 0:
        raise ValueError(f"Interval must be positive, got {minutes}")
    hour_start = timestamp.replace(minute=0, second=0, microsecond=0)
    return hour_start + timedelta(minutes=(timestamp.minute // minutes) * minutes)


def bucket_key(timestamp: datetime, granularity: Granularity) -> str:
    """Format the calendar bucket key of a timestamp.

    Formats: hour ``YYYY-MM-DD HH:00``, day ``YYYY-MM-DD``, week
    ``YYYY-Www`` using the ISO week-based year, month ``YYYY-MM``.
    """
    if granularity is Granularity.HOUR:
        return f"{timestamp.date().isoformat()} {timestamp.hour:02d}:00"
    if granularity is Granularity.DAY:
        return timestamp.date().isoformat()
    if granularity is Granularity.WEEK:
        iso_year, iso_week, _ = timestamp.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{timestamp.year}-{timestamp.month:02d}"
