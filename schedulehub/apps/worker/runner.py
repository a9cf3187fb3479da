"""Lock-guarded execution of periodic jobs with a persisted run history."""

from __future__ import annotations

import logging
import os
import socket
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from schedulehub.core.metrics import record_job_run
from schedulehub.core.timezone_utils import normalize_to_utc, utc_now
from schedulehub.core.uow import SessionFactory, UnitOfWork
from schedulehub.domain.batch import BatchResult
from schedulehub.domain.locks import LockService
from schedulehub.domain.models import JobRun, JobRunStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

MAX_ERROR_SUMMARY = 5


@dataclass(frozen=True)
class WorkerJob:
    """A named unit of periodic work and the queue it drains."""

    name: str
    run: Callable[[], Awaitable[BatchResult]]
    queue_depth: Callable[[], Awaitable[int]]


def new_instance_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def _summarize(errors: list[str]) -> Optional[str]:
    if not errors:
        return None
    summary = "; ".join(errors[:MAX_ERROR_SUMMARY])
    if len(errors) > MAX_ERROR_SUMMARY:
        summary += f" (+{len(errors) - MAX_ERROR_SUMMARY} more)"
    return summary


class JobRunner:
    def __init__(
        self,
        locks: LockService,
        session_factory: SessionFactory,
        *,
        lock_ttl_seconds: float = 120,
        clock: Optional[Clock] = None,
    ) -> None:
        self._locks = locks
        self._session_factory = session_factory
        self._ttl = lock_ttl_seconds
        self._clock = clock or utc_now

    def _now(self) -> datetime:
        return normalize_to_utc(self._clock())

    async def _store(self, run: JobRun) -> JobRun:
        async with UnitOfWork(self._session_factory) as uow:
            (await uow.job_runs.add(run)).unwrap()
            await uow.commit()
        return run

    async def run(self, job: WorkerJob, *, trigger: str = "scheduled") -> JobRun:
        instance_id = new_instance_id()
        started_at = self._now()

        if not await self._locks.acquire(job.name, instance_id, self._ttl):
            holder = await self._locks.get_holder(job.name)
            logger.info(
                "worker.job.locked",
                extra={"job": job.name, "holder": holder.locked_by if holder else None},
            )
            record_job_run(job.name, JobRunStatus.LOCKED)
            return await self._store(
                JobRun(
                    job_name=job.name,
                    instance_id=instance_id,
                    trigger=trigger,
                    status=JobRunStatus.LOCKED,
                    started_at=started_at,
                    finished_at=started_at,
                    duration_ms=0,
                    error_summary=f"lock held by {holder.locked_by}" if holder else None,
                )
            )

        logger.info("worker.job.started", extra={"job": job.name, "instance_id": instance_id, "trigger": trigger})
        timer = time.monotonic()
        result = BatchResult()
        depth_before: Optional[int] = None
        depth_after: Optional[int] = None
        try:
            depth_before = await job.queue_depth()
            result = await job.run()
            depth_after = await job.queue_depth()
            status = JobRunStatus.COMPLETED
            error_summary = _summarize(result.errors)
        except Exception as exc:
            logger.exception("worker.job.crashed", extra={"job": job.name, "instance_id": instance_id})
            status = JobRunStatus.FAILED
            error_summary = str(exc) or exc.__class__.__name__
        finally:
            await self._locks.release(job.name, instance_id)

        elapsed = time.monotonic() - timer
        run = await self._store(
            JobRun(
                job_name=job.name,
                instance_id=instance_id,
                trigger=trigger,
                status=status,
                processed=result.processed,
                failed=result.failed,
                skipped=result.skipped,
                queue_depth_before=depth_before,
                queue_depth_after=depth_after,
                error_summary=error_summary,
                started_at=started_at,
                finished_at=self._now(),
                duration_ms=int(elapsed * 1000),
            )
        )
        record_job_run(
            job.name,
            status,
            processed=result.processed,
            failed=result.failed,
            duration_seconds=elapsed,
            queue_depth=depth_after,
        )
        logger.info(
            "worker.job.finished",
            extra={
                "job": job.name,
                "status": status,
                "processed": result.processed,
                "failed": result.failed,
                "skipped": result.skipped,
                "queue_depth_before": depth_before,
                "queue_depth_after": depth_after,
                "duration_ms": run.duration_ms,
            },
        )
        return run


__all__ = ["JobRunner", "WorkerJob", "new_instance_id"]
