"""
Slot generation.

Pure functions: availability in, ordered slot list out. Nothing here touches
storage or the network, so every call recomputes from the data it is given.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from schedulehub.core.timezone_utils import (
    SLOT_GRANULARITY_MINUTES,
    ceil_to_slot_boundary,
    datetime_range_overlap,
    normalize_to_utc,
    to_local_time,
    utc_now,
)
from schedulehub.integrations.calendar.base import InterviewerAvailability, WorkingHours
from schedulehub.repositories.bookings import BookedInterval

from .types import AvailableSlot, SlotConstraints

DEFAULT_MAX_SLOTS = 30

AVAILABILITY_WEIGHT = 50
TIMELINESS_WEIGHT = 30
TIME_OF_DAY_WEIGHT = 10


def _slot_timestamp(value: datetime) -> str:
    return normalize_to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def generate_slot_id(start: datetime, end: datetime, interviewer_emails: Iterable[str]) -> str:
    """Stable 16-hex-char id from the interval and the sorted, lowercased interviewer list."""
    emails = ",".join(sorted(email.lower() for email in interviewer_emails))
    data = f"{_slot_timestamp(start)}|{_slot_timestamp(end)}|{emails}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:16]


def format_slot_time(value: datetime, tz_name: str) -> str:
    """``Wed, Jan 15 at 9:00 AM EST`` in the given timezone."""
    local = to_local_time(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{local:%a, %b} {local.day} at {hour}:{local:%M} {local:%p} {local.tzname()}"


def _parse_hhmm(raw: str) -> time:
    hours, _, minutes = raw.partition(":")
    return time(int(hours), int(minutes or 0))


def is_within_working_hours(start: datetime, end: datetime, working_hours: WorkingHours) -> bool:
    """The whole interval must sit inside the working window of the start's local day."""
    local_start = to_local_time(start, working_hours.timezone)
    local_end = to_local_time(end, working_hours.timezone)
    if local_start.isoweekday() not in working_hours.days_of_week:
        return False
    day = local_start.date()
    tz = local_start.tzinfo
    work_start = datetime.combine(day, _parse_hhmm(working_hours.start), tzinfo=tz)
    work_end = datetime.combine(day, _parse_hhmm(working_hours.end), tzinfo=tz)
    return work_start <= local_start and local_end <= work_end


def _interviewer_free(
    start: datetime,
    end: datetime,
    availability: InterviewerAvailability,
    booked: Sequence[BookedInterval],
) -> bool:
    if not is_within_working_hours(start, end, availability.working_hours):
        return False
    if any(datetime_range_overlap(start, end, busy.start, busy.end) for busy in availability.busy_intervals):
        return False
    return not any(datetime_range_overlap(start, end, item.start, item.end) for item in booked)


def score_slot(
    start: datetime,
    available_count: int,
    total_count: int,
    *,
    now: datetime,
    prefer_earlier: bool = True,
    tz_name: str = "UTC",
) -> tuple[float, str]:
    """Desirability score plus a short human-readable rationale.

    The time-of-day bonus applies to starts between 09:00 and 14:59 in ``tz_name``.
    """
    reasons: List[str] = []

    ratio = available_count / total_count if total_count else 0.0
    score = round(ratio * AVAILABILITY_WEIGHT, 2)
    if available_count == total_count:
        reasons.append("All interviewers available")
    else:
        reasons.append(f"{available_count}/{total_count} interviewers available")

    if prefer_earlier:
        days_from_now = (start - now).total_seconds() / 86400
        score += round(max(0.0, TIMELINESS_WEIGHT - days_from_now * 2), 2)
        if days_from_now < 1:
            reasons.append("Available today")
        elif days_from_now < 3:
            reasons.append("Available soon")

    if 9 <= to_local_time(start, tz_name).hour <= 14:
        score += TIME_OF_DAY_WEIGHT
        reasons.append("Optimal time of day")

    return round(score, 2), "; ".join(reasons)


def generate_available_slots(
    constraints: SlotConstraints,
    availability: Sequence[InterviewerAvailability],
    booked: Sequence[BookedInterval] = (),
    *,
    now: Optional[datetime] = None,
    max_slots: Optional[int] = DEFAULT_MAX_SLOTS,
) -> List[AvailableSlot]:
    """
    Enumerate bookable slots inside the constraint window.

    Start times are 15-minute aligned in UTC and begin at the later of the
    window start and ``now``. A slot is kept when at least one required
    interviewer is inside working hours and clear of busy time and live
    bookings. Interviewers missing from ``availability`` never count as free.
    """
    now = normalize_to_utc(now or utc_now())
    required = [email.lower() for email in constraints.interviewer_emails]
    by_email: Mapping[str, InterviewerAvailability] = {
        item.email.lower(): item for item in availability if item.email.lower() in required
    }
    booked_by_email: Dict[str, List[BookedInterval]] = {email: [] for email in required}
    for interval in booked:
        for email in interval.interviewer_emails:
            if email.lower() in booked_by_email:
                booked_by_email[email.lower()].append(interval)

    duration = timedelta(minutes=constraints.duration_minutes)
    step = timedelta(minutes=SLOT_GRANULARITY_MINUTES)
    window_end = normalize_to_utc(constraints.window_end)
    current = ceil_to_slot_boundary(max(normalize_to_utc(constraints.window_start), now))

    slots: List[AvailableSlot] = []
    while current < window_end:
        if max_slots is not None and len(slots) >= max_slots:
            break
        slot_end = current + duration
        if slot_end > window_end:
            break

        free = tuple(
            email
            for email in required
            if email in by_email and _interviewer_free(current, slot_end, by_email[email], booked_by_email[email])
        )
        if free:
            score, rationale = score_slot(
                current, len(free), len(required), now=now, tz_name=constraints.candidate_timezone
            )
            slots.append(
                AvailableSlot(
                    slot_id=generate_slot_id(current, slot_end, constraints.interviewer_emails),
                    start=current,
                    end=slot_end,
                    display_start=format_slot_time(current, constraints.candidate_timezone),
                    display_end=format_slot_time(slot_end, constraints.candidate_timezone),
                    available_interviewers=free,
                    score=score,
                    rationale=rationale,
                )
            )
        current += step

    return slots


def find_slot(slots: Iterable[AvailableSlot], slot_id: str) -> Optional[AvailableSlot]:
    return next((slot for slot in slots if slot.slot_id == slot_id), None)


def find_slot_starting_at(slots: Iterable[AvailableSlot], start: datetime) -> Optional[AvailableSlot]:
    start_utc = normalize_to_utc(start)
    return next((slot for slot in slots if slot.start == start_utc), None)


__all__ = [
    "DEFAULT_MAX_SLOTS",
    "find_slot",
    "find_slot_starting_at",
    "format_slot_time",
    "generate_available_slots",
    "generate_slot_id",
    "is_within_working_hours",
    "score_slot",
]
