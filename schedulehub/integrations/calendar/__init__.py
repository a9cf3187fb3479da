from .base import (
    Attendee,
    BusyInterval,
    CalendarClient,
    CreatedEvent,
    EventPayload,
    EventUpdate,
    InterviewerAvailability,
    WorkingHours,
)
from .memory import InMemoryCalendarClient

__all__ = [
    "Attendee",
    "BusyInterval",
    "CalendarClient",
    "CreatedEvent",
    "EventPayload",
    "EventUpdate",
    "InMemoryCalendarClient",
    "InterviewerAvailability",
    "WorkingHours",
]
