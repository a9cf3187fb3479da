"""Applicant-tracking-system collaborator contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ApplicationSummary:
    id: str
    candidate_name: str
    candidate_email: str
    requisition_id: str
    requisition_title: str
    status: str = "Unknown"


@runtime_checkable
class AtsClient(Protocol):
    async def get_application(self, application_id: str) -> ApplicationSummary:
        ...

    async def add_application_note(
        self, application_id: str, text: str, *, idempotency_key: Optional[str] = None
    ) -> Optional[str]:
        """Append a note; returns the ATS activity id when the provider reports one."""
        ...


__all__ = ["AtsClient", "ApplicationSummary"]
