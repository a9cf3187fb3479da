"""Deterministic in-process calendar used in development and tests."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from schedulehub.domain.errors import CollaboratorError, RetryableCollaboratorError

from .base import (
    BusyInterval,
    CreatedEvent,
    EventPayload,
    EventUpdate,
    InterviewerAvailability,
    WorkingHours,
)

logger = logging.getLogger(__name__)


@dataclass
class StoredEvent:
    event_id: str
    organizer_email: str
    payload: EventPayload
    cancelled: bool = False
    cancel_comment: Optional[str] = None


class InMemoryCalendarClient:
    """
    Keeps events in a dict and answers free/busy from configured calendars.

    Every requested interviewer gets ``default_working_hours`` unless
    :meth:`remove_interviewer` was called, in which case the interviewer is
    left out of the free/busy response. Failures can be injected per
    operation with :meth:`fail_next`.
    """

    def __init__(self, default_working_hours: Optional[WorkingHours] = None) -> None:
        self.default_working_hours = default_working_hours or WorkingHours(
            start="00:00", end="23:59", days_of_week=(1, 2, 3, 4, 5, 6, 7)
        )
        self._working_hours: Dict[str, WorkingHours] = {}
        self._busy: Dict[str, List[BusyInterval]] = {}
        self._missing: set[str] = set()
        self._failures: Dict[str, List[CollaboratorError]] = {}
        self._ids = itertools.count(1)
        self.events: Dict[str, StoredEvent] = {}

    def set_working_hours(self, email: str, working_hours: WorkingHours) -> None:
        self._working_hours[email.lower()] = working_hours

    def add_busy(self, email: str, start: datetime, end: datetime, status: str = "busy") -> None:
        self._busy.setdefault(email.lower(), []).append(BusyInterval(start=start, end=end, status=status))

    def remove_interviewer(self, email: str) -> None:
        self._missing.add(email.lower())

    def fail_next(self, operation: str, error: Optional[CollaboratorError] = None, *, times: int = 1) -> None:
        error = error or RetryableCollaboratorError("calendar", f"injected {operation} failure")
        self._failures.setdefault(operation, []).extend([error] * times)

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def live_events(self) -> List[StoredEvent]:
        return [event for event in self.events.values() if not event.cancelled]

    async def get_free_busy(
        self, emails: Sequence[str], start: datetime, end: datetime
    ) -> List[InterviewerAvailability]:
        self._maybe_fail("get_free_busy")
        result: List[InterviewerAvailability] = []
        for email in emails:
            key = email.lower()
            if key in self._missing:
                continue
            busy: Iterable[BusyInterval] = (
                interval
                for interval in self._busy.get(key, [])
                if interval.start < end and start < interval.end
            )
            result.append(
                InterviewerAvailability(
                    email=email,
                    busy_intervals=tuple(busy),
                    working_hours=self._working_hours.get(key, self.default_working_hours),
                )
            )
        return result

    async def create_event(self, organizer_email: str, payload: EventPayload) -> CreatedEvent:
        self._maybe_fail("create_event")
        number = next(self._ids)
        event_id = f"evt-{number}"
        self.events[event_id] = StoredEvent(event_id=event_id, organizer_email=organizer_email, payload=payload)
        logger.debug("calendar.memory.created", extra={"event_id": event_id})
        return CreatedEvent(
            event_id=event_id,
            ical_uid=f"ical-{number}@schedulehub.local",
            join_url=f"https://meet.example.com/{event_id}" if payload.is_online_meeting else None,
        )

    async def update_event(self, organizer_email: str, event_id: str, update: EventUpdate) -> None:
        self._maybe_fail("update_event")
        stored = self.events.get(event_id)
        if stored is None or stored.cancelled:
            raise CollaboratorError("calendar", f"event {event_id} not found", status_code=404)
        changes = {
            name: value
            for name, value in (
                ("start", update.start),
                ("end", update.end),
                ("timezone", update.timezone),
                ("subject", update.subject),
                ("body_html", update.body_html),
            )
            if value is not None
        }
        stored.payload = replace(stored.payload, **changes)

    async def cancel_event(self, organizer_email: str, event_id: str, comment: Optional[str] = None) -> None:
        self._maybe_fail("cancel_event")
        stored = self.events.get(event_id)
        if stored is None:
            raise CollaboratorError("calendar", f"event {event_id} not found", status_code=404)
        stored.cancelled = True
        stored.cancel_comment = comment


__all__ = ["InMemoryCalendarClient", "StoredEvent"]
