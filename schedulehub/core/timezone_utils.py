"""
Timezone utilities for consistent datetime handling across the application.

Principles:
1. Storage: always UTC aware datetimes (see ``schedulehub.domain.base.UTCDateTime``)
2. API: accept ISO8601 with offset, or naive datetime + timezone name
3. Display: UTC for the ATS record, candidate timezone for people

Usage:
    from schedulehub.core.timezone_utils import normalize_to_utc, format_for_ui

    utc_dt = normalize_to_utc(naive_dt, "America/New_York")
    local_str = format_for_ui(utc_dt, "Europe/London")
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, available_timezones

__all__ = [
    "DEFAULT_TIMEZONE",
    "SLOT_GRANULARITY_MINUTES",
    "ceil_to_slot_boundary",
    "datetime_range_overlap",
    "ensure_aware",
    "format_for_ui",
    "is_slot_aligned",
    "is_valid_timezone",
    "normalize_to_utc",
    "parse_timezone",
    "to_iso_utc",
    "to_local_time",
    "utc_now",
]

DEFAULT_TIMEZONE = "UTC"
SLOT_GRANULARITY_MINUTES = 15

# Cache of valid timezone names (lowercase -> canonical)
_TZ_CACHE = {name.lower(): name for name in available_timezones()}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timezone(tz_name: Optional[str]) -> ZoneInfo:
    """
    Parse timezone name to ZoneInfo object.

    ``None`` means UTC; matching is case-insensitive and tolerates spaces.

    Raises:
        ValueError: If timezone is invalid
    """
    if tz_name is None:
        return ZoneInfo(DEFAULT_TIMEZONE)

    cleaned = tz_name.strip()
    if cleaned == "":
        raise ValueError("Timezone is empty")

    normalized = cleaned.lower().replace(" ", "_")
    if normalized in _TZ_CACHE:
        return ZoneInfo(_TZ_CACHE[normalized])

    try:
        return ZoneInfo(cleaned)
    except (ValueError, KeyError, OSError):
        pass

    raise ValueError(f"Invalid timezone: {tz_name}")


def is_valid_timezone(tz_name: Optional[str]) -> bool:
    if not tz_name:
        return False
    try:
        parse_timezone(tz_name)
    except ValueError:
        return False
    return True


def ensure_aware(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """Attach ``tz_name`` (or UTC) to a naive datetime; aware values pass through."""
    if dt.tzinfo is not None and dt.tzinfo.utcoffset(dt) is not None:
        return dt
    tz = parse_timezone(tz_name) if tz_name else timezone.utc
    return dt.replace(tzinfo=tz)


def normalize_to_utc(dt: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Convert any datetime to UTC aware.

    Examples:
        >>> naive = datetime(2025, 11, 26, 15, 0)
        >>> normalize_to_utc(naive, "Europe/Berlin").hour
        14
    """
    return ensure_aware(dt, tz_name).astimezone(timezone.utc)


def to_local_time(dt: datetime, tz_name: str) -> datetime:
    return ensure_aware(dt).astimezone(parse_timezone(tz_name))


def format_for_ui(
    dt: datetime,
    tz_name: str,
    format_str: str = "%Y-%m-%d %H:%M",
    show_tz: bool = False,
) -> str:
    """
    Format datetime for display in the given timezone.

    Examples:
        >>> utc_dt = datetime(2025, 11, 26, 12, 0, tzinfo=timezone.utc)
        >>> format_for_ui(utc_dt, "America/New_York", show_tz=True)
        '2025-11-26 07:00 EST'
    """
    local_dt = to_local_time(dt, tz_name)
    formatted = local_dt.strftime(format_str)
    if show_tz:
        formatted = f"{formatted} {local_dt.tzname()}"
    return formatted


def to_iso_utc(dt: datetime) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    return normalize_to_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")


def ceil_to_slot_boundary(dt: datetime, minutes: int = SLOT_GRANULARITY_MINUTES) -> datetime:
    """Round up to the next ``minutes`` boundary in UTC; aligned values are kept."""
    utc_dt = normalize_to_utc(dt)
    floored = utc_dt.replace(
        minute=utc_dt.minute - utc_dt.minute % minutes, second=0, microsecond=0
    )
    if floored == utc_dt:
        return floored
    return floored + timedelta(minutes=minutes)


def is_slot_aligned(dt: datetime, minutes: int = SLOT_GRANULARITY_MINUTES) -> bool:
    utc_dt = normalize_to_utc(dt)
    return utc_dt.minute % minutes == 0 and utc_dt.second == 0 and utc_dt.microsecond == 0


def datetime_range_overlap(
    start1: datetime,
    end1: datetime,
    start2: datetime,
    end2: datetime,
) -> bool:
    """
    Check if two half-open ranges ``[start, end)`` overlap.

    Back-to-back ranges (``end1 == start2``) do not overlap.
    """
    return (
        normalize_to_utc(start1) < normalize_to_utc(end2)
        and normalize_to_utc(start2) < normalize_to_utc(end1)
    )
