"""
Deterministic ATS note templates.

Every formatter is a pure function of its parameters: fixed sections, stable
field order and ``N/A`` for missing optional values, so the same input always
produces byte-identical text.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from schedulehub.core.timezone_utils import normalize_to_utc, to_local_time

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class LinkCreatedNote:
    scheduling_request_id: str
    application_id: Optional[str]
    public_link: str
    interviewer_emails: Sequence[str]
    organizer_email: str
    interview_type: str
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    candidate_timezone: str


@dataclass(frozen=True)
class BookedNote:
    scheduling_request_id: str
    booking_id: str
    application_id: Optional[str]
    interviewer_emails: Sequence[str]
    organizer_email: str
    scheduled_start: datetime
    scheduled_end: datetime
    candidate_timezone: str
    calendar_event_id: Optional[str]
    join_url: Optional[str]


@dataclass(frozen=True)
class CancelledNote:
    scheduling_request_id: str
    booking_id: Optional[str]
    application_id: Optional[str]
    interviewer_emails: Sequence[str]
    organizer_email: str
    reason: str
    cancelled_by: str


@dataclass(frozen=True)
class RescheduledNote:
    scheduling_request_id: str
    booking_id: str
    application_id: Optional[str]
    interviewer_emails: Sequence[str]
    organizer_email: str
    old_start: datetime
    old_end: datetime
    new_start: datetime
    new_end: datetime
    candidate_timezone: str
    calendar_event_id: Optional[str]
    reason: Optional[str]


def format_utc(value: datetime) -> str:
    return normalize_to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def format_local(value: datetime, tz_name: str) -> str:
    """``Wed, Jan 15, 2025, 9:00 AM EST``"""
    local = to_local_time(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{local:%a, %b} {local.day}, {local.year}, {hour}:{local:%M} {local:%p} {local.tzname()}"


def _interviewers(emails: Sequence[str]) -> str:
    return ", ".join(emails)


def _or_na(value: Optional[str]) -> str:
    return value or NOT_AVAILABLE


def format_link_created_note(note: LinkCreatedNote) -> str:
    lines = [
        "=== SCHEDULING LINK CREATED ===",
        "",
        f"Scheduling Request ID: {note.scheduling_request_id}",
        f"Application ID: {_or_na(note.application_id)}",
        "",
        f"Public Link: {note.public_link}",
        "",
        f"Interview Type: {note.interview_type}",
        f"Duration: {note.duration_minutes} minutes",
        "",
        f"Interviewer(s): {_interviewers(note.interviewer_emails)}",
        f"Organizer: {note.organizer_email}",
        "",
        "Available Window:",
        f"  Start: {format_utc(note.window_start)} (UTC)",
        f"  End: {format_utc(note.window_end)} (UTC)",
        f"  Candidate Timezone: {note.candidate_timezone}",
        "",
        "================================",
    ]
    return "\n".join(lines)


def format_booked_note(note: BookedNote) -> str:
    lines = [
        "=== INTERVIEW BOOKED ===",
        "",
        f"Scheduling Request ID: {note.scheduling_request_id}",
        f"Booking ID: {note.booking_id}",
        f"Application ID: {_or_na(note.application_id)}",
        "",
        "Scheduled Time (UTC):",
        f"  Start: {format_utc(note.scheduled_start)}",
        f"  End: {format_utc(note.scheduled_end)}",
        "",
        f"Scheduled Time ({note.candidate_timezone}):",
        f"  Start: {format_local(note.scheduled_start, note.candidate_timezone)}",
        f"  End: {format_local(note.scheduled_end, note.candidate_timezone)}",
        "",
        f"Interviewer(s): {_interviewers(note.interviewer_emails)}",
        f"Organizer: {note.organizer_email}",
        "",
        f"Calendar Event ID: {_or_na(note.calendar_event_id)}",
        f"Join URL: {_or_na(note.join_url)}",
        "",
        "========================",
    ]
    return "\n".join(lines)


def format_cancelled_note(note: CancelledNote) -> str:
    lines = [
        "=== INTERVIEW CANCELLED ===",
        "",
        f"Scheduling Request ID: {note.scheduling_request_id}",
        f"Booking ID: {_or_na(note.booking_id)}",
        f"Application ID: {_or_na(note.application_id)}",
        "",
        f"Cancelled By: {note.cancelled_by}",
        f"Reason: {note.reason}",
        "",
        f"Interviewer(s): {_interviewers(note.interviewer_emails)}",
        f"Organizer: {note.organizer_email}",
        "",
        "===========================",
    ]
    return "\n".join(lines)


def format_rescheduled_note(note: RescheduledNote) -> str:
    lines = [
        "=== INTERVIEW RESCHEDULED ===",
        "",
        f"Scheduling Request ID: {note.scheduling_request_id}",
        f"Booking ID: {note.booking_id}",
        f"Application ID: {_or_na(note.application_id)}",
        "",
        "Previous Time (UTC):",
        f"  Start: {format_utc(note.old_start)}",
        f"  End: {format_utc(note.old_end)}",
        "",
        "New Time (UTC):",
        f"  Start: {format_utc(note.new_start)}",
        f"  End: {format_utc(note.new_end)}",
        "",
        f"New Time ({note.candidate_timezone}):",
        f"  Start: {format_local(note.new_start, note.candidate_timezone)}",
        f"  End: {format_local(note.new_end, note.candidate_timezone)}",
        "",
        f"Interviewer(s): {_interviewers(note.interviewer_emails)}",
        f"Organizer: {note.organizer_email}",
        "",
        f"Calendar Event ID: {_or_na(note.calendar_event_id)}",
        f"Reason: {note.reason or 'Not specified'}",
        "",
        "=============================",
    ]
    return "\n".join(lines)


__all__ = [
    "BookedNote",
    "CancelledNote",
    "LinkCreatedNote",
    "RescheduledNote",
    "format_booked_note",
    "format_cancelled_note",
    "format_link_created_note",
    "format_local",
    "format_rescheduled_note",
    "format_utc",
]
