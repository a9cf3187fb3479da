"""
Idempotent notification queue.

Every job gets a deterministic key ``{type}:{entity_type}:{entity_id}[:{variant}]``.
Enqueueing a key that already exists returns the stored job untouched, so
callers can retry side effects freely. Variants are used where repeats are
intended: reminders carry the hour bucket of their send time, resends carry a
millisecond timestamp and reschedule confirmations add the previous start to it. A reminder whose key
belongs to a CANCELED job (the booking moved within the same hour, or back to
an earlier time) revives that job with the new send time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Mapping, NamedTuple, Optional

from schedulehub.core.timezone_utils import normalize_to_utc, to_iso_utc, to_local_time, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.models import (
    Booking,
    NotificationJob,
    NotificationStatus,
    NotificationType,
    SchedulingRequest,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
REMINDER_OFFSETS = {
    NotificationType.REMINDER_24H: timedelta(hours=24),
    NotificationType.REMINDER_2H: timedelta(hours=2),
}


class ReminderJobs(NamedTuple):
    reminder_24h: Optional[NotificationJob]
    reminder_2h: Optional[NotificationJob]


def build_idempotency_key(
    notification_type: str, entity_type: str, entity_id: str, variant: Optional[str] = None
) -> str:
    parts = [notification_type, entity_type, entity_id]
    if variant:
        parts.append(variant)
    return ":".join(parts)


def hour_bucket(value: datetime) -> str:
    return normalize_to_utc(value).strftime("%Y-%m-%dT%H")


def resend_variant(now: datetime) -> str:
    return f"resend-{int(normalize_to_utc(now).timestamp() * 1000)}"


def format_long_local(value: datetime, tz_name: str) -> str:
    """``Wednesday, January 15, 2025 at 9:00 AM EST``"""
    local = to_local_time(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{local:%A, %B} {local.day}, {local.year} at {hour}:{local:%M} {local:%p} {local.tzname()}"


def format_short_local(value: datetime, tz_name: str) -> str:
    local = to_local_time(value, tz_name)
    hour = local.hour % 12 or 12
    return f"{hour}:{local:%M} {local:%p} {local.tzname()}"


def _request_payload(request: SchedulingRequest) -> dict[str, Any]:
    return {
        "candidate_name": request.candidate_name,
        "candidate_email": request.candidate_email,
        "candidate_timezone": request.candidate_timezone,
        "requisition_title": request.requisition_title,
        "interview_type": request.interview_type,
        "duration_minutes": request.duration_minutes,
    }


def _booking_payload(request: SchedulingRequest, booking: Booking) -> dict[str, Any]:
    return {
        **_request_payload(request),
        "scheduled_start_utc": to_iso_utc(booking.scheduled_start),
        "scheduled_end_utc": to_iso_utc(booking.scheduled_end),
        "scheduled_start_local": format_long_local(booking.scheduled_start, request.candidate_timezone),
        "scheduled_end_local": format_short_local(booking.scheduled_end, request.candidate_timezone),
        "conference_join_url": booking.conference_join_url,
    }


class NotificationQueue:
    def __init__(self, session_factory: SessionFactory, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self._session_factory = session_factory
        self._max_attempts = max_attempts

    async def _create_job(
        self,
        notification_type: str,
        *,
        entity_type: str,
        entity_id: str,
        to_email: str,
        payload: Mapping[str, Any],
        run_after: Optional[datetime] = None,
        variant: Optional[str] = None,
        revive_canceled: bool = False,
    ) -> NotificationJob:
        key = build_idempotency_key(notification_type, entity_type, entity_id, variant)
        async with UnitOfWork(self._session_factory) as uow:
            existing = await uow.notifications.get_by_idempotency_key(key)
            if existing is not None and revive_canceled and existing.status == NotificationStatus.CANCELED:
                existing.status = NotificationStatus.PENDING
                existing.to_email = to_email
                existing.payload = dict(payload)
                existing.attempts = 0
                existing.last_error = None
                existing.run_after = run_after or utc_now()
                await uow.commit()
                logger.info(
                    "notifications.enqueue.revived",
                    extra={"notification_type": notification_type, "entity_id": entity_id, "job_id": existing.id},
                )
                return existing
            if existing is not None:
                logger.debug("notifications.enqueue.duplicate", extra={"idempotency_key": key})
                return existing

            job = NotificationJob(
                type=notification_type,
                entity_type=entity_type,
                entity_id=entity_id,
                idempotency_key=key,
                to_email=to_email,
                payload=dict(payload),
                status=NotificationStatus.PENDING,
                attempts=0,
                max_attempts=self._max_attempts,
                run_after=run_after or utc_now(),
            )
            result = await uow.notifications.add(job)
            if result.is_success():
                await uow.commit()
                logger.info(
                    "notifications.enqueued",
                    extra={"notification_type": notification_type, "entity_id": entity_id, "job_id": job.id},
                )
                return job

            error = result.error
            await uow.rollback()
            if not error.constraint_violation:
                result.unwrap()
            # Another writer inserted the same key between the lookup and the flush.
            existing = await uow.notifications.get_by_idempotency_key(key)
            if existing is None:
                result.unwrap()
            return existing

    async def enqueue_self_schedule_link_notification(
        self, request: SchedulingRequest, public_link: str
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.SELF_SCHEDULE_LINK,
            entity_type="scheduling_request",
            entity_id=request.id,
            to_email=request.candidate_email,
            payload={
                **_request_payload(request),
                "public_link": public_link,
                "expires_at": to_iso_utc(request.expires_at),
            },
        )

    async def enqueue_resend_self_schedule_link(
        self, request: SchedulingRequest, public_link: str, *, now: Optional[datetime] = None
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.SELF_SCHEDULE_LINK,
            entity_type="scheduling_request",
            entity_id=request.id,
            to_email=request.candidate_email,
            payload={
                **_request_payload(request),
                "public_link": public_link,
                "expires_at": to_iso_utc(request.expires_at),
                "is_resend": True,
            },
            variant=resend_variant(now or utc_now()),
        )

    async def enqueue_booking_confirmation_notification(
        self, request: SchedulingRequest, booking: Booking
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.BOOKING_CONFIRMATION,
            entity_type="booking",
            entity_id=booking.id,
            to_email=request.candidate_email,
            payload={
                **_booking_payload(request, booking),
                "interviewer_emails": list(request.interviewer_emails),
                "calendar_event_id": booking.calendar_event_id,
            },
        )

    async def enqueue_resend_booking_confirmation(
        self, request: SchedulingRequest, booking: Booking, *, now: Optional[datetime] = None
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.BOOKING_CONFIRMATION,
            entity_type="booking",
            entity_id=booking.id,
            to_email=request.candidate_email,
            payload={
                **_booking_payload(request, booking),
                "interviewer_emails": list(request.interviewer_emails),
                "calendar_event_id": booking.calendar_event_id,
                "is_resend": True,
            },
            variant=resend_variant(now or utc_now()),
        )

    async def enqueue_reschedule_confirmation_notification(
        self,
        request: SchedulingRequest,
        booking: Booking,
        *,
        old_start: datetime,
        old_end: datetime,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.RESCHEDULE_CONFIRMATION,
            entity_type="booking",
            entity_id=booking.id,
            to_email=request.candidate_email,
            payload={
                **_booking_payload(request, booking),
                "old_start_utc": to_iso_utc(old_start),
                "old_end_utc": to_iso_utc(old_end),
                "old_start_local": format_long_local(old_start, request.candidate_timezone),
                "reason": reason,
            },
            variant=(
                f"reschedule-{int(normalize_to_utc(old_start).timestamp())}"
                f"-{int(normalize_to_utc(now or utc_now()).timestamp() * 1000)}"
            ),
        )

    async def enqueue_cancel_notice_notification(
        self, request: SchedulingRequest, *, reason: str, cancelled_by: str
    ) -> NotificationJob:
        return await self._create_job(
            NotificationType.CANCEL_NOTICE,
            entity_type="scheduling_request",
            entity_id=request.id,
            to_email=request.candidate_email,
            payload={**_request_payload(request), "reason": reason, "cancelled_by": cancelled_by},
        )

    async def enqueue_reminder_notifications(
        self, request: SchedulingRequest, booking: Booking, *, now: Optional[datetime] = None
    ) -> ReminderJobs:
        """Schedule the 24h and 2h reminders; a reminder whose send time has passed is skipped."""
        now = now or utc_now()
        base_payload = _booking_payload(request, booking)
        created: dict[str, Optional[NotificationJob]] = {}
        for notification_type, offset in REMINDER_OFFSETS.items():
            run_after = booking.scheduled_start - offset
            if run_after <= now:
                created[notification_type] = None
                continue
            created[notification_type] = await self._create_job(
                notification_type,
                entity_type="booking",
                entity_id=booking.id,
                to_email=request.candidate_email,
                payload={**base_payload, "hours_until": int(offset.total_seconds() // 3600)},
                run_after=run_after,
                variant=hour_bucket(run_after),
                revive_canceled=True,
            )
        return ReminderJobs(
            reminder_24h=created[NotificationType.REMINDER_24H],
            reminder_2h=created[NotificationType.REMINDER_2H],
        )

    async def cancel_pending_reminders(self, booking_id: str) -> int:
        async with UnitOfWork(self._session_factory) as uow:
            count = await uow.notifications.cancel_pending_reminders(booking_id)
            await uow.commit()
        if count:
            logger.info("notifications.reminders.cancelled", extra={"booking_id": booking_id, "count": count})
        return count

    async def enqueue_nudge_notification(
        self,
        request: SchedulingRequest,
        public_link: str,
        *,
        urgent: bool,
        days_since_request: int,
    ) -> NotificationJob:
        notification_type = NotificationType.NUDGE_REMINDER_URGENT if urgent else NotificationType.NUDGE_REMINDER
        return await self._create_job(
            notification_type,
            entity_type="scheduling_request",
            entity_id=request.id,
            to_email=request.candidate_email,
            payload={
                **_request_payload(request),
                "public_link": public_link,
                "days_since_request": days_since_request,
                "is_urgent": urgent,
            },
        )

    async def enqueue_escalation_notification(
        self,
        request: SchedulingRequest,
        *,
        coordinator_email: str,
        days_since_request: int,
        expired: bool,
    ) -> NotificationJob:
        notification_type = (
            NotificationType.ESCALATION_EXPIRED if expired else NotificationType.ESCALATION_NO_RESPONSE
        )
        return await self._create_job(
            notification_type,
            entity_type="scheduling_request",
            entity_id=request.id,
            to_email=coordinator_email,
            payload={
                **_request_payload(request),
                "request_id": request.id,
                "days_since_request": days_since_request,
            },
        )


__all__ = [
    "NotificationQueue",
    "ReminderJobs",
    "build_idempotency_key",
    "format_long_local",
    "hour_bucket",
    "resend_variant",
]
