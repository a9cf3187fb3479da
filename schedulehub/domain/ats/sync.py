"""Retry loop for ATS notes that failed on first write."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from schedulehub.core.audit import log_audit_action
from schedulehub.core.timezone_utils import normalize_to_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.batch import BatchResult
from schedulehub.domain.models import SyncJob, SyncJobStatus

from .writeback import AtsWritebackService, WritebackResult, _entity_ids, next_run_after

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class SyncJobProcessor:
    def __init__(
        self,
        session_factory: SessionFactory,
        writeback: AtsWritebackService,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._session_factory = session_factory
        self._writeback = writeback
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    async def _record(self, job_id: str, outcome: WritebackResult) -> str:
        now = self._now()
        async with UnitOfWork(self._session_factory) as uow:
            job = (await uow.sync_jobs.get(job_id)).unwrap()
            job.attempts += 1
            ids = _entity_ids(job.entity_type, job.entity_id)
            note_type = (job.payload or {}).get("note_type")

            if outcome.success:
                job.status = SyncJobStatus.SUCCEEDED
                job.last_error = None
                await log_audit_action(
                    uow,
                    "sync_job_success",
                    payload={"sync_job_id": job.id, "note_type": note_type, "attempts": job.attempts},
                    **ids,
                )
                logger.info("ats.sync.succeeded", extra={"sync_job_id": job.id, "attempts": job.attempts})
            elif job.attempts >= job.max_attempts:
                job.status = SyncJobStatus.FAILED
                job.last_error = outcome.error
                await log_audit_action(
                    uow,
                    "sync_job_failed",
                    payload={
                        "sync_job_id": job.id,
                        "note_type": note_type,
                        "attempts": job.attempts,
                        "error": outcome.error,
                    },
                    **ids,
                )
                logger.error("ats.sync.failed", extra={"sync_job_id": job.id, "error": outcome.error})
            else:
                job.status = SyncJobStatus.PENDING
                job.last_error = outcome.error
                job.run_after = next_run_after(job.attempts, now)
                logger.warning(
                    "ats.sync.retry_scheduled",
                    extra={"sync_job_id": job.id, "attempts": job.attempts, "next_run": job.run_after.isoformat()},
                )
            status = job.status
            await uow.commit()
        return status

    async def process_job(self, job: SyncJob) -> str:
        try:
            outcome = await self._writeback.retry_job(job)
        except Exception as exc:
            logger.exception("ats.sync.retry_error", extra={"sync_job_id": job.id})
            outcome = WritebackResult(success=False, error=str(exc) or exc.__class__.__name__)
        return await self._record(job.id, outcome)

    async def process_pending(self, batch_size: int = 10) -> BatchResult:
        result = BatchResult()
        async with UnitOfWork(self._session_factory) as uow:
            jobs = await uow.sync_jobs.claim_due(self._now(), limit=batch_size)
            await uow.commit()

        for job in jobs:
            status = await self.process_job(job)
            if status == SyncJobStatus.SUCCEEDED:
                result.processed += 1
            else:
                result.record_failure(f"sync job {job.id}: {status}")
        return result

    async def count_pending(self) -> int:
        async with UnitOfWork(self._session_factory) as uow:
            return await uow.sync_jobs.count_pending()


__all__ = ["SyncJobProcessor"]
