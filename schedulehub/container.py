"""Process-wide wiring of services and collaborators."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from schedulehub.core.db import Database
from schedulehub.core.settings import Settings, get_settings
from schedulehub.domain.ats.sync import SyncJobProcessor
from schedulehub.domain.ats.writeback import AtsWritebackService
from schedulehub.domain.escalation import EscalationService, EscalationThresholds
from schedulehub.domain.locks import LockService, build_lock_service
from schedulehub.domain.notifications.dispatcher import NotificationDispatcher
from schedulehub.domain.notifications.queue import NotificationQueue
from schedulehub.domain.notifications.renderer import NotificationRenderer
from schedulehub.domain.reconciliation import ReconciliationService
from schedulehub.domain.scheduling.service import SchedulingConfig, SchedulingService
from schedulehub.integrations.ats.base import AtsClient
from schedulehub.integrations.ats.icims import IcimsClient
from schedulehub.integrations.ats.memory import InMemoryAtsClient
from schedulehub.integrations.calendar.base import CalendarClient
from schedulehub.integrations.calendar.graph import GraphCalendarClient
from schedulehub.integrations.calendar.memory import InMemoryCalendarClient
from schedulehub.integrations.email.base import EmailTransport
from schedulehub.integrations.email.console import ConsoleEmailTransport
from schedulehub.integrations.email.smtp import SmtpEmailTransport

logger = logging.getLogger(__name__)


def build_calendar_client(settings: Settings) -> CalendarClient:
    if settings.calendar_provider == "graph":
        return GraphCalendarClient(
            tenant_id=settings.graph_tenant_id,
            client_id=settings.graph_client_id,
            client_secret=settings.graph_client_secret,
            organizer_email=settings.organizer_email,
            base_url=settings.graph_base_url,
            timeout=settings.calendar_timeout_seconds,
        )
    return InMemoryCalendarClient()


def build_ats_client(settings: Settings) -> AtsClient:
    if settings.ats_provider == "icims":
        return IcimsClient(
            base_url=settings.icims_base_url,
            customer_id=settings.icims_customer_id,
            api_key=settings.icims_api_key,
            timeout=settings.ats_timeout_seconds,
        )
    return InMemoryAtsClient()


def build_email_transport(settings: Settings) -> EmailTransport:
    if settings.email_mode == "smtp":
        return SmtpEmailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.smtp_from,
            starttls=settings.smtp_starttls,
        )
    return ConsoleEmailTransport()


@dataclass
class ServiceContainer:
    """Everything the API and the worker share, built once per process."""

    settings: Settings
    database: Database
    calendar: CalendarClient
    ats: AtsClient
    email: EmailTransport
    notifications: NotificationQueue
    writeback: AtsWritebackService
    scheduling: SchedulingService
    reconciliation: ReconciliationService
    escalation: EscalationService
    dispatcher: NotificationDispatcher
    sync: SyncJobProcessor
    locks: LockService

    @classmethod
    def build(
        cls,
        settings: Optional[Settings] = None,
        *,
        database: Optional[Database] = None,
        calendar: Optional[CalendarClient] = None,
        ats: Optional[AtsClient] = None,
        email: Optional[EmailTransport] = None,
        locks: Optional[LockService] = None,
        clock: Any = None,
    ) -> "ServiceContainer":
        settings = settings or get_settings()
        database = database or Database.from_settings(settings)
        session_factory = database.session_factory
        calendar = calendar or build_calendar_client(settings)
        ats = ats or build_ats_client(settings)
        email = email or build_email_transport(settings)

        notifications = NotificationQueue(session_factory, max_attempts=settings.notification_max_attempts)
        writeback = AtsWritebackService(
            session_factory,
            ats,
            enabled=settings.ats_sync_enabled,
            timeout_seconds=settings.ats_timeout_seconds,
        )
        scheduling = SchedulingService(
            session_factory,
            calendar,
            notifications,
            writeback,
            SchedulingConfig.from_settings(settings),
            clock=clock,
        )
        reconciliation = ReconciliationService(
            session_factory,
            calendar,
            ats,
            ats_enabled=settings.ats_sync_enabled,
            stale_hours=settings.reconciliation_stale_hours,
            max_attempts=settings.reconciliation_max_attempts,
            calendar_timeout_seconds=settings.calendar_timeout_seconds,
            ats_timeout_seconds=settings.ats_timeout_seconds,
            clock=clock,
        )
        escalation = EscalationService(
            session_factory,
            notifications,
            EscalationThresholds(
                nudge_hours=settings.escalation_nudge_hours,
                urgent_nudge_hours=settings.escalation_urgent_nudge_hours,
                coordinator_hours=settings.escalation_coordinator_hours,
                expire_hours=settings.escalation_expire_hours,
            ),
            clock=clock,
        )
        dispatcher = NotificationDispatcher(session_factory, email, NotificationRenderer(), clock=clock)
        sync = SyncJobProcessor(session_factory, writeback, clock=clock)
        locks = locks or build_lock_service(settings, session_factory=session_factory)

        logger.info(
            "container.built",
            extra={
                "calendar_provider": settings.calendar_provider,
                "ats_provider": settings.ats_provider,
                "email_mode": settings.email_mode,
                "lock_backend": settings.lock_backend,
            },
        )
        return cls(
            settings=settings,
            database=database,
            calendar=calendar,
            ats=ats,
            email=email,
            notifications=notifications,
            writeback=writeback,
            scheduling=scheduling,
            reconciliation=reconciliation,
            escalation=escalation,
            dispatcher=dispatcher,
            sync=sync,
            locks=locks,
        )

    async def close(self) -> None:
        for resource in (self.calendar, self.ats):
            closer = getattr(resource, "close", None)
            if closer is None:
                continue
            try:
                await closer()
            except Exception:
                logger.exception("container.close_failed", extra={"resource": type(resource).__name__})
        await self.locks.close()
        await self.database.dispose()


__all__ = [
    "ServiceContainer",
    "build_ats_client",
    "build_calendar_client",
    "build_email_transport",
]
