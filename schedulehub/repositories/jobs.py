from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from schedulehub.core.repository.base import BaseRepository
from schedulehub.domain.models import (
    JobLock,
    JobRun,
    ReconciliationJob,
    ReconciliationJobStatus,
    SyncJob,
    SyncJobStatus,
)


def no_open_reconciliation_job(job_type: str, entity_id_column):
    """Filter clause that skips entities already queued for this kind of repair."""
    return ~exists().where(
        ReconciliationJob.job_type == job_type,
        ReconciliationJob.entity_id == entity_id_column,
        ReconciliationJob.status.in_(ReconciliationJobStatus.OPEN),
    )


class SyncJobRepository(BaseRepository[SyncJob]):
    def __init__(self, session: AsyncSession):
        super().__init__(SyncJob, session)

    async def claim_due(self, now: datetime, *, limit: int) -> List[SyncJob]:
        """Move due pending jobs to ``processing`` and return them."""
        rows = await self.list_where(
            SyncJob.status == SyncJobStatus.PENDING,
            SyncJob.run_after <= now,
            limit=limit,
            order_by=SyncJob.run_after.asc(),
        )
        for row in rows:
            row.status = SyncJobStatus.PROCESSING
        if rows:
            await self.session.flush()
        return list(rows)

    async def count_pending(self) -> int:
        return await self.count(SyncJob.status == SyncJobStatus.PENDING)

    async def list_for_entity(self, entity_id: str) -> Sequence[SyncJob]:
        return await self.list_where(SyncJob.entity_id == entity_id, order_by=SyncJob.created_at.asc())


class ReconciliationJobRepository(BaseRepository[ReconciliationJob]):
    def __init__(self, session: AsyncSession):
        super().__init__(ReconciliationJob, session)

    async def find_open(self, job_type: str, entity_id: str) -> Optional[ReconciliationJob]:
        result = await self.session.execute(
            select(ReconciliationJob)
            .where(
                ReconciliationJob.job_type == job_type,
                ReconciliationJob.entity_id == entity_id,
                ReconciliationJob.status.in_(ReconciliationJobStatus.OPEN),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def claim_due(self, now: datetime, *, limit: int) -> List[ReconciliationJob]:
        rows = await self.list_where(
            ReconciliationJob.status == ReconciliationJobStatus.PENDING,
            ReconciliationJob.run_after <= now,
            limit=limit,
            order_by=ReconciliationJob.run_after.asc(),
        )
        for row in rows:
            row.status = ReconciliationJobStatus.PROCESSING
        if rows:
            await self.session.flush()
        return list(rows)

    async def count_pending(self) -> int:
        return await self.count(ReconciliationJob.status == ReconciliationJobStatus.PENDING)

    async def list_for_entity(self, entity_id: str) -> Sequence[ReconciliationJob]:
        return await self.list_where(
            ReconciliationJob.entity_id == entity_id,
            order_by=ReconciliationJob.created_at.asc(),
        )


class JobLockRepository(BaseRepository[JobLock]):
    def __init__(self, session: AsyncSession):
        super().__init__(JobLock, session)

    async def get_lock(self, job_name: str) -> Optional[JobLock]:
        return await self.session.get(JobLock, job_name, populate_existing=True)

    async def extend_lock(self, job_name: str, instance_id: str, *, now: datetime, expires_at: datetime) -> bool:
        """Push out a live lease the caller already holds."""
        stmt = (
            update(JobLock)
            .where(
                JobLock.job_name == job_name,
                JobLock.locked_by == instance_id,
                JobLock.expires_at > now,
            )
            .values(expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def take_over_expired(
        self, job_name: str, instance_id: str, *, now: datetime, expires_at: datetime
    ) -> bool:
        """Claim an expired lease; the expiry check and the write are one statement."""
        stmt = (
            update(JobLock)
            .where(JobLock.job_name == job_name, JobLock.expires_at <= now)
            .values(locked_by=instance_id, locked_at=now, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete_lock(
        self,
        job_name: str,
        *,
        locked_by: Optional[str] = None,
        expired_before: Optional[datetime] = None,
    ) -> int:
        stmt = delete(JobLock).where(JobLock.job_name == job_name)
        if locked_by is not None:
            stmt = stmt.where(JobLock.locked_by == locked_by)
        if expired_before is not None:
            stmt = stmt.where(JobLock.expires_at <= expired_before)
        result = await self.session.execute(stmt)
        return result.rowcount or 0


class JobRunRepository(BaseRepository[JobRun]):
    def __init__(self, session: AsyncSession):
        super().__init__(JobRun, session)

    async def list_recent(self, job_name: Optional[str] = None, *, limit: int = 20) -> Sequence[JobRun]:
        criteria = [JobRun.job_name == job_name] if job_name else []
        return await self.list_where(*criteria, limit=limit, order_by=JobRun.started_at.desc())


__all__ = [
    "JobLockRepository",
    "JobRunRepository",
    "ReconciliationJobRepository",
    "SyncJobRepository",
    "no_open_reconciliation_job",
]
