from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.repository.base import BaseRepository
from schedulehub.domain.models import (
    NotificationAttempt,
    NotificationJob,
    NotificationStatus,
    NotificationType,
)


class NotificationJobRepository(BaseRepository[NotificationJob]):
    def __init__(self, session: AsyncSession):
        super().__init__(NotificationJob, session)

    async def get_by_idempotency_key(self, key: str) -> Optional[NotificationJob]:
        result = await self.session.execute(
            select(NotificationJob).where(NotificationJob.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def list_for_entity(self, entity_type: str, entity_id: str) -> Sequence[NotificationJob]:
        return await self.list_where(
            NotificationJob.entity_type == entity_type,
            NotificationJob.entity_id == entity_id,
            order_by=NotificationJob.created_at.asc(),
        )

    async def cancel_pending_reminders(self, booking_id: str) -> int:
        """Flip PENDING reminder jobs for the booking to CANCELED; sent ones are left alone."""
        result = await self.session.execute(
            update(NotificationJob)
            .where(
                NotificationJob.entity_type == "booking",
                NotificationJob.entity_id == booking_id,
                NotificationJob.type.in_(NotificationType.REMINDERS),
                NotificationJob.status == NotificationStatus.PENDING,
            )
            .values(status=NotificationStatus.CANCELED)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    async def claim_due(self, now: datetime, *, limit: int) -> List[NotificationJob]:
        rows = await self.list_where(
            NotificationJob.status == NotificationStatus.PENDING,
            NotificationJob.run_after <= now,
            limit=limit,
            order_by=NotificationJob.run_after.asc(),
        )
        for row in rows:
            row.status = NotificationStatus.SENDING
        if rows:
            await self.session.flush()
        return list(rows)

    async def count_pending(self) -> int:
        return await self.count(NotificationJob.status == NotificationStatus.PENDING)


class NotificationAttemptRepository(BaseRepository[NotificationAttempt]):
    def __init__(self, session: AsyncSession):
        super().__init__(NotificationAttempt, session)

    async def list_for_job(self, job_id: str) -> Sequence[NotificationAttempt]:
        return await self.list_where(
            NotificationAttempt.notification_job_id == job_id,
            order_by=NotificationAttempt.attempt_number.asc(),
        )


__all__ = ["NotificationAttemptRepository", "NotificationJobRepository"]
