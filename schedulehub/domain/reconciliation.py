"""
Drift detection and repair.

Detection scans persisted state for three kinds of drift and files one
``ReconciliationJob`` per (job type, entity) while no open job exists for
it. Processing applies the type-specific repair through the real
collaborators; failures back off ``2^attempts`` minutes and, once the attempt
budget is spent, flag the owning request for an operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from schedulehub.core.audit import log_audit_action
from schedulehub.core.timezone_utils import normalize_to_utc, to_iso_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.ats.note_formatter import BookedNote, format_booked_note
from schedulehub.domain.ats.writeback import NoteType, note_idempotency_key
from schedulehub.domain.models import (
    BookingStatus,
    ReconciliationJob,
    ReconciliationJobStatus,
    ReconciliationJobType,
    RequestStatus,
)
from schedulehub.domain.scheduling.service import build_event_payload
from schedulehub.integrations.ats.base import AtsClient
from schedulehub.integrations.calendar.base import CalendarClient
from schedulehub.integrations.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_STALE_HOURS = 24

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class DetectionResult:
    job_type: str
    entity_type: str
    entity_id: str
    reason: str


@dataclass(frozen=True)
class RepairResult:
    success: bool
    action: Optional[str] = None
    error: Optional[str] = None


def retry_delay(attempts: int) -> timedelta:
    return timedelta(minutes=2**attempts)


class ReconciliationService:
    def __init__(
        self,
        session_factory: SessionFactory,
        calendar: CalendarClient,
        ats: AtsClient,
        *,
        ats_enabled: bool = True,
        stale_hours: int = DEFAULT_STALE_HOURS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        calendar_timeout_seconds: float = 10.0,
        ats_timeout_seconds: float = 10.0,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._calendar = calendar
        self._ats = ats
        self._ats_enabled = ats_enabled
        self._stale = timedelta(hours=stale_hours)
        self._max_attempts = max_attempts
        self._calendar_timeout = calendar_timeout_seconds
        self._ats_timeout = ats_timeout_seconds
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def _detect(self, uow: UnitOfWork, now: datetime) -> List[DetectionResult]:
        found: List[DetectionResult] = []
        stale_before = now - self._stale

        for request in await uow.requests.list_pending_with_confirmed_booking():
            booking = await uow.bookings.get_by_request_id(request.id)
            found.append(
                DetectionResult(
                    job_type=ReconciliationJobType.STATE_MISMATCH,
                    entity_type="scheduling_request",
                    entity_id=request.id,
                    reason=(
                        f"Request has confirmed booking {booking.id if booking else '?'} "
                        f"but status is '{request.status}' instead of 'booked'"
                    ),
                )
            )
        for request in await uow.requests.list_pending_expired(now):
            found.append(
                DetectionResult(
                    job_type=ReconciliationJobType.STATE_MISMATCH,
                    entity_type="scheduling_request",
                    entity_id=request.id,
                    reason=f"Request expired at {to_iso_utc(request.expires_at)} but still marked as pending",
                )
            )

        if self._ats_enabled:
            for booking in await uow.bookings.list_confirmed_missing_ats_note(stale_before):
                found.append(
                    DetectionResult(
                        job_type=ReconciliationJobType.ICIMS_NOTE_MISSING,
                        entity_type="booking",
                        entity_id=booking.id,
                        reason=(
                            f"Booking confirmed at {to_iso_utc(booking.confirmed_at)} "
                            "but no iCIMS activity synced"
                        ),
                    )
                )

        for booking in await uow.bookings.list_confirmed_missing_calendar_event(stale_before):
            found.append(
                DetectionResult(
                    job_type=ReconciliationJobType.CALENDAR_EVENT_MISSING,
                    entity_type="booking",
                    entity_id=booking.id,
                    reason=(
                        f"Booking confirmed at {to_iso_utc(booking.confirmed_at)} "
                        "but no calendar event created"
                    ),
                )
            )
        return found

    async def run_detection(self) -> List[DetectionResult]:
        """File jobs for newly detected drift; returns only the issues that produced a job."""
        now = self._now()
        created: List[DetectionResult] = []
        async with UnitOfWork(self._session_factory) as uow:
            seen: set[tuple[str, str]] = set()
            for issue in await self._detect(uow, now):
                key = (issue.job_type, issue.entity_id)
                if key in seen or await uow.reconciliation_jobs.find_open(*key) is not None:
                    continue
                seen.add(key)
                job = ReconciliationJob(
                    job_type=issue.job_type,
                    entity_type=issue.entity_type,
                    entity_id=issue.entity_id,
                    detection_reason=issue.reason,
                    status=ReconciliationJobStatus.PENDING,
                    attempts=0,
                    max_attempts=self._max_attempts,
                    run_after=now,
                )
                (await uow.reconciliation_jobs.add(job)).unwrap()
                created.append(issue)

            if created:
                await log_audit_action(
                    uow,
                    "reconciliation_detected",
                    payload={
                        "count": len(created),
                        "issues": [
                            {"job_type": item.job_type, "entity_id": item.entity_id, "reason": item.reason}
                            for item in created
                        ],
                    },
                )
            await uow.commit()

        if created:
            logger.info("reconciliation.detected", extra={"count": len(created)})
        return created

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    async def _repair_state_mismatch(self, uow: UnitOfWork, job: ReconciliationJob, now: datetime) -> RepairResult:
        request = (await uow.requests.get(job.entity_id)).unwrap_or(None)
        if request is None:
            return RepairResult(success=False, error="Request not found")
        if request.status != RequestStatus.PENDING:
            return RepairResult(success=True, action=f"Request already {request.status}; nothing to do")

        booking = await uow.bookings.get_by_request_id(request.id)
        if booking is not None and booking.status == BookingStatus.CONFIRMED:
            request.status = RequestStatus.BOOKED
            return RepairResult(success=True, action="Updated request status to booked")
        if request.expires_at <= now:
            request.status = RequestStatus.EXPIRED
            return RepairResult(success=True, action="Marked expired request as expired")
        return RepairResult(success=False, error="Could not determine repair action for state mismatch")

    async def _repair_ats_note(self, uow: UnitOfWork, job: ReconciliationJob) -> RepairResult:
        booking = (await uow.bookings.get(job.entity_id)).unwrap_or(None)
        if booking is None:
            return RepairResult(success=False, error="Booking not found")
        if booking.status != BookingStatus.CONFIRMED:
            return RepairResult(success=False, error=f"Booking status is '{booking.status}', not 'confirmed'")
        if booking.ats_activity_id:
            return RepairResult(success=True, action="ATS activity already recorded")
        request = (await uow.requests.get(booking.request_id)).unwrap()
        if not request.application_id:
            return RepairResult(success=False, error="Request has no ATS application id")

        text = format_booked_note(
            BookedNote(
                scheduling_request_id=request.id,
                booking_id=booking.id,
                application_id=request.application_id,
                interviewer_emails=tuple(request.interviewer_emails),
                organizer_email=request.organizer_email,
                scheduled_start=booking.scheduled_start,
                scheduled_end=booking.scheduled_end,
                candidate_timezone=request.candidate_timezone,
                calendar_event_id=booking.calendar_event_id,
                join_url=booking.conference_join_url,
            )
        )
        key = note_idempotency_key(booking.id, NoteType.BOOKED)
        activity_id = await call_with_timeout(
            "ats",
            self._ats.add_application_note(request.application_id, text, idempotency_key=key),
            self._ats_timeout,
        )
        booking.ats_activity_id = activity_id or key
        return RepairResult(success=True, action=f"Created iCIMS activity {booking.ats_activity_id}")

    async def _repair_calendar_event(self, uow: UnitOfWork, job: ReconciliationJob) -> RepairResult:
        booking = (await uow.bookings.get(job.entity_id)).unwrap_or(None)
        if booking is None:
            return RepairResult(success=False, error="Booking not found")
        if booking.status != BookingStatus.CONFIRMED:
            return RepairResult(success=False, error=f"Booking status is '{booking.status}', not 'confirmed'")
        if booking.calendar_event_id:
            return RepairResult(success=True, action="Calendar event already recorded")
        request = (await uow.requests.get(booking.request_id)).unwrap()

        created = await call_with_timeout(
            "calendar",
            self._calendar.create_event(
                request.organizer_email,
                build_event_payload(
                    request, booking.scheduled_start, booking.scheduled_end, request.interviewer_emails
                ),
            ),
            self._calendar_timeout,
        )
        booking.calendar_event_id = created.event_id
        booking.calendar_ical_uid = created.ical_uid
        booking.conference_join_url = booking.conference_join_url or created.join_url
        return RepairResult(success=True, action=f"Created calendar event {created.event_id}")

    async def _repair(self, uow: UnitOfWork, job: ReconciliationJob, now: datetime) -> RepairResult:
        if job.job_type == ReconciliationJobType.STATE_MISMATCH:
            return await self._repair_state_mismatch(uow, job, now)
        if job.job_type == ReconciliationJobType.ICIMS_NOTE_MISSING:
            return await self._repair_ats_note(uow, job)
        if job.job_type == ReconciliationJobType.CALENDAR_EVENT_MISSING:
            return await self._repair_calendar_event(uow, job)
        return RepairResult(success=False, error=f"Unknown job type: {job.job_type}")

    async def process_job(self, job: ReconciliationJob) -> RepairResult:
        now = self._now()
        async with UnitOfWork(self._session_factory) as uow:
            try:
                result = await self._repair(uow, job, now)
            except Exception as exc:
                await uow.rollback()
                result = RepairResult(success=False, error=str(exc) or exc.__class__.__name__)

            if not result.success:
                # Partial repair changes must not survive a failed attempt.
                await uow.rollback()

            stored = (await uow.reconciliation_jobs.get(job.id)).unwrap()
            ids = _entity_ids(stored)
            if result.success:
                stored.status = ReconciliationJobStatus.REPAIRED
                stored.repair_action = result.action
                stored.repaired_at = now
                await log_audit_action(
                    uow,
                    "reconciliation_repaired",
                    payload={"job_id": stored.id, "job_type": stored.job_type, "repair_action": result.action},
                    **ids,
                )
                logger.info(
                    "reconciliation.repaired",
                    extra={"job_id": stored.id, "job_type": stored.job_type, "action": result.action},
                )
            else:
                await self._handle_failure(uow, stored, result.error or "Unknown error", now)
            await uow.commit()
        return result

    async def _handle_failure(self, uow: UnitOfWork, job: ReconciliationJob, error: str, now: datetime) -> None:
        attempts = job.attempts + 1
        job.attempts = attempts
        job.last_error = error[:500]
        ids = _entity_ids(job)
        if attempts < job.max_attempts:
            job.status = ReconciliationJobStatus.PENDING
            job.run_after = now + retry_delay(attempts)
            logger.warning(
                "reconciliation.retry_scheduled",
                extra={"job_id": job.id, "attempts": attempts, "error": job.last_error},
            )
            return

        job.status = ReconciliationJobStatus.FAILED
        await log_audit_action(
            uow,
            "reconciliation_failed",
            payload={"job_id": job.id, "job_type": job.job_type, "error": job.last_error, "attempts": attempts},
            **ids,
        )

        request_id = job.entity_id
        if job.entity_type == "booking":
            booking = (await uow.bookings.get(job.entity_id)).unwrap_or(None)
            request_id = booking.request_id if booking is not None else None
        request = (await uow.requests.get(request_id)).unwrap_or(None) if request_id else None
        if request is not None:
            prefix = "Booking reconciliation failed" if job.entity_type == "booking" else "Reconciliation failed"
            request.needs_attention = True
            request.needs_attention_reason = f"{prefix}: {job.last_error}"
            await log_audit_action(
                uow,
                "needs_attention_set",
                payload={"job_id": job.id, "reason": job.last_error},
                **ids,
            )
        logger.error("reconciliation.failed", extra={"job_id": job.id, "job_type": job.job_type})

    async def process_pending(self, batch_size: int = 10) -> List[RepairResult]:
        now = self._now()
        async with UnitOfWork(self._session_factory) as uow:
            jobs = await uow.reconciliation_jobs.claim_due(now, limit=batch_size)
            await uow.commit()
        return [await self.process_job(job) for job in jobs]

    async def count_pending(self) -> int:
        async with UnitOfWork(self._session_factory) as uow:
            return await uow.reconciliation_jobs.count_pending()


def _entity_ids(job: ReconciliationJob) -> dict[str, Optional[str]]:
    if job.entity_type == "booking":
        return {"request_id": None, "booking_id": job.entity_id}
    return {"request_id": job.entity_id, "booking_id": None}


__all__ = [
    "DetectionResult",
    "ReconciliationService",
    "RepairResult",
    "retry_delay",
]
