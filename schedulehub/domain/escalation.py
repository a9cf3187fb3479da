"""
Escalation of requests the candidate has not acted on.

Thresholds are measured from ``created_at`` of a pending request and checked
from the most severe down; only the first matching step runs per pass:

* expire hours: the request becomes ``expired`` and the coordinator is told
* coordinator hours: the coordinator gets a no-response escalation
* urgent hours: the candidate gets an urgent nudge (the first nudge is sent
  instead when it never went out)
* nudge hours: the candidate gets a friendly nudge

Every step is keyed per request in the notification queue, so repeated
passes never send the same message twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from schedulehub.core.audit import log_audit_action
from schedulehub.core.timezone_utils import normalize_to_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.models import NotificationType, RequestStatus, SchedulingRequest
from schedulehub.domain.notifications.queue import NotificationQueue, build_idempotency_key

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class EscalationThresholds:
    nudge_hours: int = 48
    urgent_nudge_hours: int = 96
    coordinator_hours: int = 120
    expire_hours: int = 168


@dataclass
class EscalationSummary:
    checked: int = 0
    nudges: int = 0
    urgent_nudges: int = 0
    escalations: int = 0
    expired: int = 0
    skipped: int = 0

    @property
    def actions(self) -> int:
        return self.nudges + self.urgent_nudges + self.escalations + self.expired


def coordinator_email_for(request: SchedulingRequest) -> str:
    if request.created_by and "@" in request.created_by:
        return request.created_by
    return request.organizer_email


class EscalationService:
    def __init__(
        self,
        session_factory: SessionFactory,
        notifications: NotificationQueue,
        thresholds: Optional[EscalationThresholds] = None,
        *,
        batch_size: int = 100,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifications = notifications
        self._thresholds = thresholds or EscalationThresholds()
        self._batch_size = batch_size
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    async def _already_queued(self, uow: UnitOfWork, notification_type: str, request_id: str) -> bool:
        key = build_idempotency_key(notification_type, "scheduling_request", request_id)
        return await uow.notifications.get_by_idempotency_key(key) is not None

    async def _latest_public_link(self, uow: UnitOfWork, request_id: str) -> Optional[str]:
        jobs = await uow.notifications.list_for_entity("scheduling_request", request_id)
        links = [
            job.payload.get("public_link")
            for job in jobs
            if job.type == NotificationType.SELF_SCHEDULE_LINK and job.payload.get("public_link")
        ]
        return links[-1] if links else None

    async def run(self) -> EscalationSummary:
        now = self._now()
        thresholds = self._thresholds
        summary = EscalationSummary()
        cutoff = now - timedelta(hours=thresholds.nudge_hours)

        async with UnitOfWork(self._session_factory) as uow:
            candidates = list(await uow.requests.list_pending_created_before(cutoff, limit=self._batch_size))

        for request in candidates:
            summary.checked += 1
            hours = (now - request.created_at).total_seconds() / 3600
            days = int(hours // 24)

            if hours >= thresholds.expire_hours:
                if await self._expire(request, days):
                    summary.expired += 1
                else:
                    summary.skipped += 1
                continue

            async with UnitOfWork(self._session_factory) as uow:
                nudged = await self._already_queued(uow, NotificationType.NUDGE_REMINDER, request.id)
                urgent_sent = await self._already_queued(uow, NotificationType.NUDGE_REMINDER_URGENT, request.id)
                escalated = await self._already_queued(uow, NotificationType.ESCALATION_NO_RESPONSE, request.id)
                link = await self._latest_public_link(uow, request.id)

            if hours >= thresholds.coordinator_hours:
                if escalated:
                    summary.skipped += 1
                    continue
                await self._notifications.enqueue_escalation_notification(
                    request,
                    coordinator_email=coordinator_email_for(request),
                    days_since_request=days,
                    expired=False,
                )
                summary.escalations += 1
                logger.info("escalation.coordinator", extra={"request_id": request.id, "days": days})
                continue

            if link is None:
                logger.warning("escalation.no_link", extra={"request_id": request.id})
                summary.skipped += 1
                continue

            if hours >= thresholds.urgent_nudge_hours and nudged:
                if urgent_sent:
                    summary.skipped += 1
                    continue
                await self._notifications.enqueue_nudge_notification(
                    request, link, urgent=True, days_since_request=days
                )
                summary.urgent_nudges += 1
                logger.info("escalation.urgent_nudge", extra={"request_id": request.id, "days": days})
                continue

            if nudged:
                summary.skipped += 1
                continue
            await self._notifications.enqueue_nudge_notification(request, link, urgent=False, days_since_request=days)
            summary.nudges += 1
            logger.info("escalation.nudge", extra={"request_id": request.id, "days": days})

        return summary

    async def _expire(self, request: SchedulingRequest, days: int) -> bool:
        async with UnitOfWork(self._session_factory) as uow:
            stored = (await uow.requests.get(request.id)).unwrap_or(None)
            if stored is None or stored.status != RequestStatus.PENDING:
                return False
            stored.status = RequestStatus.EXPIRED
            await log_audit_action(
                uow,
                "request_expired",
                request_id=stored.id,
                payload={"reason": "no_response", "days_since_request": days},
            )
            await uow.commit()

        await self._notifications.enqueue_escalation_notification(
            stored,
            coordinator_email=coordinator_email_for(stored),
            days_since_request=days,
            expired=True,
        )
        logger.info("escalation.expired", extra={"request_id": stored.id, "days": days})
        return True

    async def count_pending(self) -> int:
        async with UnitOfWork(self._session_factory) as uow:
            return await uow.requests.count(SchedulingRequest.status == RequestStatus.PENDING)


__all__ = [
    "EscalationService",
    "EscalationSummary",
    "EscalationThresholds",
    "coordinator_email_for",
]
