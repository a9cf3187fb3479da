"""Calendar collaborator contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, runtime_checkable

BUSY_STATUSES = ("busy", "tentative", "oof", "workingElsewhere")


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    status: str = "busy"
    is_private: bool = False


@dataclass(frozen=True)
class WorkingHours:
    """Working window for one interviewer; days are ISO weekdays (1=Mon .. 7=Sun)."""

    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "UTC"
    days_of_week: tuple[int, ...] = (1, 2, 3, 4, 5)


@dataclass(frozen=True)
class InterviewerAvailability:
    email: str
    busy_intervals: tuple[BusyInterval, ...] = ()
    working_hours: WorkingHours = field(default_factory=WorkingHours)


@dataclass(frozen=True)
class Attendee:
    email: str
    name: str = ""
    required: bool = True


@dataclass(frozen=True)
class EventPayload:
    subject: str
    body_html: str
    start: datetime
    end: datetime
    attendees: tuple[Attendee, ...]
    timezone: str = "UTC"
    is_online_meeting: bool = True
    transaction_id: Optional[str] = None


@dataclass(frozen=True)
class EventUpdate:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    timezone: Optional[str] = None
    subject: Optional[str] = None
    body_html: Optional[str] = None


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    ical_uid: Optional[str] = None
    join_url: Optional[str] = None
    web_link: Optional[str] = None


@runtime_checkable
class CalendarClient(Protocol):
    async def get_free_busy(
        self, emails: Sequence[str], start: datetime, end: datetime
    ) -> List[InterviewerAvailability]:
        ...

    async def create_event(self, organizer_email: str, payload: EventPayload) -> CreatedEvent:
        ...

    async def update_event(self, organizer_email: str, event_id: str, update: EventUpdate) -> None:
        ...

    async def cancel_event(self, organizer_email: str, event_id: str, comment: Optional[str] = None) -> None:
        ...


__all__ = [
    "Attendee",
    "BUSY_STATUSES",
    "BusyInterval",
    "CalendarClient",
    "CreatedEvent",
    "EventPayload",
    "EventUpdate",
    "InterviewerAvailability",
    "WorkingHours",
]
