"""Delivery of queued notification jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from schedulehub.core.timezone_utils import normalize_to_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.batch import BatchResult
from schedulehub.domain.models import NotificationAttempt, NotificationJob, NotificationStatus
from schedulehub.integrations.email.base import EmailMessage, EmailTransport, SendResult

from .renderer import NotificationRenderer

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def retry_delay(attempts: int) -> timedelta:
    """4, 16, 64, 256 minutes after the 1st..4th failure."""
    return timedelta(minutes=4**attempts)


class NotificationDispatcher:
    def __init__(
        self,
        session_factory: SessionFactory,
        transport: EmailTransport,
        renderer: Optional[NotificationRenderer] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._transport = transport
        self._renderer = renderer or NotificationRenderer()
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    async def _deliver(self, job: NotificationJob) -> SendResult:
        try:
            rendered = self._renderer.render(job.type, job.payload or {})
            return await self._transport.send(
                EmailMessage(to=job.to_email, subject=rendered.subject, html=rendered.html, text=rendered.text)
            )
        except Exception as exc:
            logger.exception("notifications.deliver_error", extra={"job_id": job.id, "notification_type": job.type})
            return SendResult(success=False, error=str(exc) or exc.__class__.__name__)

    async def _record(self, job_id: str, outcome: SendResult) -> str:
        now = self._now()
        async with UnitOfWork(self._session_factory) as uow:
            job = (await uow.notifications.get(job_id)).unwrap()
            job.attempts += 1
            attempt = NotificationAttempt(
                notification_job_id=job.id,
                attempt_number=job.attempts,
                status=NotificationStatus.SENT if outcome.success else NotificationStatus.FAILED,
                error=outcome.error,
                provider_message_id=outcome.message_id,
            )
            (await uow.notification_attempts.add(attempt)).unwrap()

            if outcome.success:
                job.status = NotificationStatus.SENT
                job.sent_at = now
                job.last_error = None
                logger.info(
                    "notifications.sent",
                    extra={"job_id": job.id, "notification_type": job.type, "attempt": job.attempts},
                )
            elif job.attempts >= job.max_attempts:
                job.status = NotificationStatus.FAILED
                job.last_error = outcome.error
                logger.error(
                    "notifications.failed",
                    extra={"job_id": job.id, "notification_type": job.type, "error": outcome.error},
                )
            else:
                job.status = NotificationStatus.PENDING
                job.last_error = outcome.error
                job.run_after = now + retry_delay(job.attempts)
                logger.warning(
                    "notifications.retry_scheduled",
                    extra={"job_id": job.id, "attempt": job.attempts, "next_run": job.run_after.isoformat()},
                )
            status = job.status
            await uow.commit()
        return status

    async def process_pending(self, batch_size: int = 10) -> BatchResult:
        result = BatchResult()
        async with UnitOfWork(self._session_factory) as uow:
            jobs = await uow.notifications.claim_due(self._now(), limit=batch_size)
            await uow.commit()

        for job in jobs:
            outcome = await self._deliver(job)
            status = await self._record(job.id, outcome)
            if status == NotificationStatus.SENT:
                result.processed += 1
            else:
                result.record_failure(outcome.error or "send failed")
        return result

    async def count_pending(self) -> int:
        async with UnitOfWork(self._session_factory) as uow:
            return await uow.notifications.count_pending()


__all__ = ["NotificationDispatcher", "retry_delay"]
