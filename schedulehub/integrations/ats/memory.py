"""In-process ATS used in development and tests."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import Dict, List, Optional

from schedulehub.domain.errors import CollaboratorError, RetryableCollaboratorError, TerminalCollaboratorError

from .base import ApplicationSummary


@dataclass(frozen=True)
class StoredNote:
    activity_id: str
    application_id: str
    text: str
    idempotency_key: Optional[str]


class InMemoryAtsClient:
    """Stores notes per application; a repeated idempotency key returns the first activity."""

    def __init__(self) -> None:
        self.applications: Dict[str, ApplicationSummary] = {}
        self.notes: List[StoredNote] = []
        self._by_key: Dict[str, StoredNote] = {}
        self._failures: List[CollaboratorError] = []
        self._ids = itertools.count(1)

    def add_application(self, summary: ApplicationSummary) -> None:
        self.applications[summary.id] = summary

    def fail_next(self, error: Optional[CollaboratorError] = None, *, times: int = 1) -> None:
        self._failures.extend([error or RetryableCollaboratorError("ats", "injected failure")] * times)

    def notes_for(self, application_id: str) -> List[StoredNote]:
        return [note for note in self.notes if note.application_id == application_id]

    async def get_application(self, application_id: str) -> ApplicationSummary:
        summary = self.applications.get(application_id)
        if summary is None:
            raise TerminalCollaboratorError("ats", f"application {application_id} not found", status_code=404)
        return summary

    async def add_application_note(
        self, application_id: str, text: str, *, idempotency_key: Optional[str] = None
    ) -> Optional[str]:
        if self._failures:
            raise self._failures.pop(0)
        if idempotency_key and idempotency_key in self._by_key:
            return self._by_key[idempotency_key].activity_id
        note = StoredNote(
            activity_id=f"ats-note-{next(self._ids)}",
            application_id=application_id,
            text=text,
            idempotency_key=idempotency_key,
        )
        self.notes.append(note)
        if idempotency_key:
            self._by_key[idempotency_key] = note
        return note.activity_id


__all__ = ["InMemoryAtsClient", "StoredNote"]
