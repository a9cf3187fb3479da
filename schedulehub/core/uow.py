"""
Unit of Work pattern implementation for transaction management.

The Unit of Work coordinates changes across repositories within a single
transaction, so a state transition and its audit entry commit together.

Example:
    async with UnitOfWork(database.session_factory) as uow:
        request = (await uow.requests.get(request_id)).unwrap()
        request.status = RequestStatus.CANCELLED
        await uow.audit.add(AuditLog(action="cancelled", ...))
        await uow.commit()
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Callable, Type

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


class UnitOfWork:
    """
    One session, every repository.

    Nothing is committed implicitly: callers commit explicitly and an
    exception inside the block rolls back.
    """

    def __init__(self, session_factory: SessionFactory | None = None, *, session: AsyncSession | None = None):
        if session_factory is None and session is None:
            raise ValueError("UnitOfWork needs a session factory or an existing session")
        self._session_factory = session_factory
        self._session = session
        self._should_close = session is None

    async def __aenter__(self) -> UnitOfWork:
        if self._session is None:
            self._session = self._session_factory()
        self._init_repositories()
        return self

    async def __aexit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                await self.rollback()
                logger.debug("Transaction rolled back due to %s: %s", exc_type.__name__, exc_val)
        finally:
            if self._should_close and self._session is not None:
                await self._session.close()
                self._session = None

    def _init_repositories(self) -> None:
        # Imported here to avoid a cycle through schedulehub.repositories -> core.repository.
        from schedulehub.repositories import (
            AuditLogRepository,
            BookingRepository,
            JobLockRepository,
            JobRunRepository,
            NotificationAttemptRepository,
            NotificationJobRepository,
            ReconciliationJobRepository,
            SchedulingRequestRepository,
            SyncJobRepository,
        )

        session = self.session
        self.requests = SchedulingRequestRepository(session)
        self.bookings = BookingRepository(session)
        self.sync_jobs = SyncJobRepository(session)
        self.notifications = NotificationJobRepository(session)
        self.notification_attempts = NotificationAttemptRepository(session)
        self.reconciliation_jobs = ReconciliationJobRepository(session)
        self.audit = AuditLogRepository(session)
        self.job_locks = JobLockRepository(session)
        self.job_runs = JobRunRepository(session)

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("Session not initialized. Use async with UnitOfWork(...).")
        return self._session

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except Exception as e:
            logger.error("Error committing transaction: %s", e, exc_info=True)
            await self.rollback()
            raise

    async def rollback(self) -> None:
        await self.session.rollback()

    async def flush(self) -> None:
        await self.session.flush()

    async def refresh(self, entity) -> None:
        await self.session.refresh(entity)


__all__ = ["SessionFactory", "UnitOfWork"]
