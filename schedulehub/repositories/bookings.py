from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.repository.base import BaseRepository
from schedulehub.domain.models import Booking, BookingStatus, ReconciliationJobType, SchedulingRequest
from schedulehub.repositories.jobs import no_open_reconciliation_job


@dataclass(frozen=True)
class BookedInterval:
    """A live booking projected onto the interviewers it occupies."""

    booking_id: str
    start: datetime
    end: datetime
    interviewer_emails: tuple[str, ...]


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, session: AsyncSession):
        super().__init__(Booking, session)

    async def get_by_request_id(self, request_id: str) -> Optional[Booking]:
        result = await self.session.execute(select(Booking).where(Booking.request_id == request_id))
        return result.scalar_one_or_none()

    async def list_live_in_range(
        self,
        start: datetime,
        end: datetime,
        interviewer_emails: Iterable[str],
        *,
        exclude_booking_id: Optional[str] = None,
    ) -> List[BookedInterval]:
        """Live bookings overlapping ``[start, end)`` that involve any of the interviewers."""
        wanted = {email.lower() for email in interviewer_emails}
        stmt = (
            select(Booking, SchedulingRequest.interviewer_emails)
            .join(SchedulingRequest, SchedulingRequest.id == Booking.request_id)
            .where(
                Booking.status.in_(BookingStatus.LIVE),
                Booking.scheduled_start < end,
                Booking.scheduled_end > start,
            )
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)

        intervals: List[BookedInterval] = []
        for booking, emails in (await self.session.execute(stmt)).all():
            # Interviewer lists live in a JSON column, so the email match happens here.
            involved = tuple(email.lower() for email in (emails or []) if email.lower() in wanted)
            if not involved:
                continue
            intervals.append(
                BookedInterval(
                    booking_id=booking.id,
                    start=booking.scheduled_start,
                    end=booking.scheduled_end,
                    interviewer_emails=involved,
                )
            )
        return intervals

    async def list_confirmed_missing_ats_note(self, confirmed_before: datetime, *, limit: int = 100) -> Sequence[Booking]:
        """Stale confirmed bookings of ATS-linked requests with no synced activity and no open repair."""
        result = await self.session.execute(
            select(Booking)
            .join(SchedulingRequest, SchedulingRequest.id == Booking.request_id)
            .where(
                Booking.status == BookingStatus.CONFIRMED,
                Booking.ats_activity_id.is_(None),
                Booking.confirmed_at < confirmed_before,
                SchedulingRequest.application_id.is_not(None),
                no_open_reconciliation_job(ReconciliationJobType.ICIMS_NOTE_MISSING, Booking.id),
            )
            .order_by(Booking.confirmed_at.asc(), Booking.id.asc())
            .limit(limit)
        )
        return result.scalars().all()

    async def list_confirmed_missing_calendar_event(
        self, confirmed_before: datetime, *, limit: int = 100
    ) -> Sequence[Booking]:
        return await self.list_where(
            Booking.status == BookingStatus.CONFIRMED,
            Booking.calendar_event_id.is_(None),
            Booking.confirmed_at < confirmed_before,
            no_open_reconciliation_job(ReconciliationJobType.CALENDAR_EVENT_MISSING, Booking.id),
            limit=limit,
            order_by=Booking.confirmed_at.asc(),
        )


__all__ = ["BookedInterval", "BookingRepository"]
