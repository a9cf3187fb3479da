"""
ATS writeback.

Notes are written after the scheduling transition has committed. A failed
write never propagates: it is audited and turned into a ``SyncJob`` that the
sync worker retries on the backoff ladder.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from schedulehub.core.audit import log_audit_action
from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.models import SyncJob, SyncJobStatus
from schedulehub.integrations.ats.base import AtsClient
from schedulehub.integrations.timeouts import call_with_timeout

from .note_formatter import (
    BookedNote,
    CancelledNote,
    LinkCreatedNote,
    RescheduledNote,
    format_booked_note,
    format_cancelled_note,
    format_link_created_note,
    format_rescheduled_note,
)

logger = logging.getLogger(__name__)

SYNC_JOB_TYPE = "ats_note"
MAX_SYNC_ATTEMPTS = 5
BACKOFF_LADDER = (
    timedelta(minutes=1),
    timedelta(minutes=5),
    timedelta(minutes=15),
    timedelta(minutes=30),
    timedelta(minutes=60),
)


class NoteType:
    LINK_CREATED = "link_created"
    BOOKED = "booked"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"


@dataclass(frozen=True)
class WritebackResult:
    success: bool
    error: Optional[str] = None
    sync_job_id: Optional[str] = None
    activity_id: Optional[str] = None
    skipped: bool = False


def next_run_after(attempts: int, now: Optional[datetime] = None) -> datetime:
    """Delay from the ladder, clamped to its last rung."""
    index = min(attempts, len(BACKOFF_LADDER) - 1)
    return (now or utc_now()) + BACKOFF_LADDER[index]


def note_idempotency_key(entity_id: str, note_type: str) -> str:
    return f"sched-{entity_id}-{note_type}"


class AtsWritebackService:
    def __init__(
        self,
        session_factory: SessionFactory,
        client: AtsClient,
        *,
        enabled: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._enabled = enabled
        self._timeout = timeout_seconds

    async def write_link_created_note(self, note: LinkCreatedNote) -> WritebackResult:
        return await self._write_formatted(
            note.application_id,
            NoteType.LINK_CREATED,
            format_link_created_note(note),
            entity_id=note.scheduling_request_id,
            entity_type="scheduling_request",
            params=asdict(note),
        )

    async def write_booked_note(self, note: BookedNote) -> WritebackResult:
        return await self._write_formatted(
            note.application_id,
            NoteType.BOOKED,
            format_booked_note(note),
            entity_id=note.booking_id,
            entity_type="booking",
            params=asdict(note),
        )

    async def write_cancelled_note(self, note: CancelledNote) -> WritebackResult:
        return await self._write_formatted(
            note.application_id,
            NoteType.CANCELLED,
            format_cancelled_note(note),
            entity_id=note.scheduling_request_id,
            entity_type="scheduling_request",
            params=asdict(note),
        )

    async def write_rescheduled_note(self, note: RescheduledNote) -> WritebackResult:
        return await self._write_formatted(
            note.application_id,
            NoteType.RESCHEDULED,
            format_rescheduled_note(note),
            entity_id=note.booking_id,
            entity_type="booking",
            params=asdict(note),
        )

    async def _write_formatted(
        self,
        application_id: Optional[str],
        note_type: str,
        note_text: str,
        *,
        entity_id: str,
        entity_type: str,
        params: Mapping[str, Any],
    ) -> WritebackResult:
        if not application_id or not self._enabled:
            return WritebackResult(success=True, skipped=True)
        return await self.write_note(
            application_id,
            note_type,
            note_text,
            entity_id=entity_id,
            entity_type=entity_type,
            params=params,
        )

    async def _send(self, application_id: str, note_type: str, note_text: str, entity_id: str) -> Optional[str]:
        return await call_with_timeout(
            "ats",
            self._client.add_application_note(
                application_id,
                note_text,
                idempotency_key=note_idempotency_key(entity_id, note_type),
            ),
            self._timeout,
        )

    async def write_note(
        self,
        application_id: str,
        note_type: str,
        note_text: str,
        *,
        entity_id: str,
        entity_type: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> WritebackResult:
        ids = _entity_ids(entity_type, entity_id)
        await self._audit("icims_note_attempt", ids, application_id=application_id, note_type=note_type)

        try:
            activity_id = await self._send(application_id, note_type, note_text, entity_id)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            logger.warning(
                "ats.writeback.failed",
                extra={"note_type": note_type, "entity_id": entity_id, "error": error},
            )
            job_id = await self._create_retry_job(
                application_id,
                note_type,
                note_text,
                entity_id=entity_id,
                entity_type=entity_type,
                params=params or {},
                error=error,
            )
            return WritebackResult(success=False, error=error, sync_job_id=job_id)

        await self._on_success(application_id, note_type, entity_id, entity_type, activity_id)
        return WritebackResult(success=True, activity_id=activity_id)

    async def retry_job(self, job: SyncJob) -> WritebackResult:
        """Repeat a failed write; scheduling the next attempt is the caller's job."""
        payload = job.payload or {}
        application_id = payload["application_id"]
        note_type = payload["note_type"]
        ids = _entity_ids(job.entity_type, job.entity_id)
        await self._audit("icims_note_attempt", ids, application_id=application_id, note_type=note_type)

        try:
            activity_id = await self._send(application_id, note_type, payload["note_text"], job.entity_id)
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            await self._audit(
                "icims_note_failed", ids, application_id=application_id, note_type=note_type, error=error
            )
            return WritebackResult(success=False, error=error)

        await self._on_success(application_id, note_type, job.entity_id, job.entity_type, activity_id)
        return WritebackResult(success=True, activity_id=activity_id)

    async def _on_success(
        self,
        application_id: str,
        note_type: str,
        entity_id: str,
        entity_type: str,
        activity_id: Optional[str],
    ) -> None:
        ids = _entity_ids(entity_type, entity_id)
        async with UnitOfWork(self._session_factory) as uow:
            if entity_type == "booking" and note_type == NoteType.BOOKED:
                booking = (await uow.bookings.get(entity_id)).unwrap_or(None)
                if booking is not None:
                    booking.ats_activity_id = activity_id or note_idempotency_key(entity_id, note_type)
            await log_audit_action(
                uow,
                "icims_note_success",
                payload={"application_id": application_id, "note_type": note_type, "entity_id": entity_id},
                **ids,
            )
            await uow.commit()

    async def _create_retry_job(
        self,
        application_id: str,
        note_type: str,
        note_text: str,
        *,
        entity_id: str,
        entity_type: str,
        params: Mapping[str, Any],
        error: str,
    ) -> str:
        ids = _entity_ids(entity_type, entity_id)
        async with UnitOfWork(self._session_factory) as uow:
            await log_audit_action(
                uow,
                "icims_note_failed",
                payload={"application_id": application_id, "note_type": note_type, "error": error},
                **ids,
            )
            job = SyncJob(
                type=SYNC_JOB_TYPE,
                entity_id=entity_id,
                entity_type=entity_type,
                attempts=0,
                max_attempts=MAX_SYNC_ATTEMPTS,
                status=SyncJobStatus.PENDING,
                last_error=error,
                payload={
                    **_json_safe(params),
                    "application_id": application_id,
                    "note_type": note_type,
                    "note_text": note_text,
                },
                run_after=next_run_after(0),
            )
            (await uow.sync_jobs.add(job)).unwrap()
            await log_audit_action(
                uow,
                "sync_job_created",
                payload={
                    "sync_job_id": job.id,
                    "note_type": note_type,
                    "application_id": application_id,
                    "reason": error,
                },
                **ids,
            )
            await uow.commit()
            return job.id

    async def _audit(self, action: str, ids: Mapping[str, Optional[str]], **payload: Any) -> None:
        async with UnitOfWork(self._session_factory) as uow:
            await log_audit_action(uow, action, payload=payload, **ids)
            await uow.commit()


def _entity_ids(entity_type: str, entity_id: str) -> dict[str, Optional[str]]:
    if entity_type == "booking":
        return {"request_id": None, "booking_id": entity_id}
    return {"request_id": entity_id, "booking_id": None}


def _json_safe(params: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in params.items():
        if isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, (list, tuple)):
            result[key] = list(value)
        else:
            result[key] = value
    return result


__all__ = [
    "AtsWritebackService",
    "BACKOFF_LADDER",
    "MAX_SYNC_ATTEMPTS",
    "NoteType",
    "SYNC_JOB_TYPE",
    "WritebackResult",
    "next_run_after",
    "note_idempotency_key",
]
