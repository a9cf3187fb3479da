from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.repository.base import BaseRepository
from schedulehub.domain.models import (
    Booking,
    BookingStatus,
    ReconciliationJobType,
    RequestStatus,
    SchedulingRequest,
)
from schedulehub.repositories.jobs import no_open_reconciliation_job


class SchedulingRequestRepository(BaseRepository[SchedulingRequest]):
    def __init__(self, session: AsyncSession):
        super().__init__(SchedulingRequest, session)

    async def get_by_token_hash(self, token_hash: str) -> Optional[SchedulingRequest]:
        result = await self.session.execute(
            select(SchedulingRequest).where(SchedulingRequest.public_token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def list_pending_expired(self, now: datetime, *, limit: int = 100) -> Sequence[SchedulingRequest]:
        """Pending requests whose public link has already expired."""
        return await self.list_where(
            SchedulingRequest.status == RequestStatus.PENDING,
            SchedulingRequest.expires_at < now,
            no_open_reconciliation_job(ReconciliationJobType.STATE_MISMATCH, SchedulingRequest.id),
            limit=limit,
            order_by=SchedulingRequest.expires_at.asc(),
        )

    async def list_pending_with_confirmed_booking(self, *, limit: int = 100) -> Sequence[SchedulingRequest]:
        result = await self.session.execute(
            select(SchedulingRequest)
            .join(Booking, Booking.request_id == SchedulingRequest.id)
            .where(
                SchedulingRequest.status == RequestStatus.PENDING,
                Booking.status == BookingStatus.CONFIRMED,
                no_open_reconciliation_job(ReconciliationJobType.STATE_MISMATCH, SchedulingRequest.id),
            )
            .order_by(SchedulingRequest.created_at.asc())
            .limit(limit)
        )
        return result.scalars().all()

    async def list_pending_created_before(self, cutoff: datetime, *, limit: int = 100) -> Sequence[SchedulingRequest]:
        return await self.list_where(
            SchedulingRequest.status == RequestStatus.PENDING,
            SchedulingRequest.created_at <= cutoff,
            limit=limit,
            order_by=SchedulingRequest.created_at.asc(),
        )


__all__ = ["SchedulingRequestRepository"]
