"""Value objects exchanged by the scheduling services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence


@dataclass(frozen=True)
class SlotConstraints:
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    interviewer_emails: tuple[str, ...]
    candidate_timezone: str = "UTC"


@dataclass(frozen=True)
class AvailableSlot:
    slot_id: str
    start: datetime
    end: datetime
    display_start: str
    display_end: str
    available_interviewers: tuple[str, ...]
    score: float = 0.0
    rationale: str = ""


@dataclass(frozen=True)
class CreateRequestInput:
    candidate_name: str
    candidate_email: str
    interviewer_emails: Sequence[str]
    duration_minutes: int
    window_start: datetime
    window_end: datetime
    candidate_timezone: str = "UTC"
    application_id: Optional[str] = None
    requisition_id: Optional[str] = None
    requisition_title: Optional[str] = None
    interview_type: str = "video"
    organizer_email: Optional[str] = None


@dataclass(frozen=True)
class CreateRequestResult:
    request_id: str
    public_link: str
    expires_at: datetime


@dataclass(frozen=True)
class RequestSummary:
    request_id: str
    candidate_name: str
    requisition_title: Optional[str]
    interview_type: str
    duration_minutes: int
    status: str


@dataclass(frozen=True)
class SlotsResult:
    request: RequestSummary
    slots: list[AvailableSlot] = field(default_factory=list)
    timezone: str = "UTC"


@dataclass(frozen=True)
class BookingSummary:
    booking_id: str
    request_id: str
    status: str
    start: datetime
    end: datetime
    calendar_event_id: Optional[str]
    join_url: Optional[str]


@dataclass(frozen=True)
class BookResult:
    success: bool
    booking: BookingSummary
    message: str


@dataclass(frozen=True)
class RescheduleResult:
    status: str
    booking_id: str
    start: datetime
    end: datetime
    calendar_event_id: Optional[str]
    join_url: Optional[str]


@dataclass(frozen=True)
class CancelResult:
    status: str
    cancelled_at: datetime
    calendar_event_id: Optional[str]


@dataclass(frozen=True)
class ResendLinkResult:
    request_id: str
    public_link: str
    expires_at: datetime
    notification_id: Optional[str]


@dataclass(frozen=True)
class RequestDetails:
    """Coordinator view of a request and its booking."""

    request_id: str
    status: str
    candidate_name: str
    candidate_email: str
    application_id: Optional[str]
    requisition_title: Optional[str]
    interview_type: str
    duration_minutes: int
    interviewer_emails: tuple[str, ...]
    organizer_email: str
    window_start: datetime
    window_end: datetime
    candidate_timezone: str
    expires_at: datetime
    needs_attention: bool
    needs_attention_reason: Optional[str]
    created_at: datetime
    booking: Optional[BookingSummary] = None


__all__ = [
    "AvailableSlot",
    "BookResult",
    "BookingSummary",
    "CancelResult",
    "CreateRequestInput",
    "CreateRequestResult",
    "RequestDetails",
    "RequestSummary",
    "ResendLinkResult",
    "RescheduleResult",
    "SlotConstraints",
    "SlotsResult",
]
