"""The periodic jobs the worker runs."""

from __future__ import annotations

from typing import Dict

from schedulehub.container import ServiceContainer
from schedulehub.domain.batch import BatchResult

from .runner import WorkerJob

NOTIFY = "notify"
SYNC = "sync"
RECONCILE = "reconcile"
ESCALATION = "escalation"

JOB_NAMES = (NOTIFY, SYNC, RECONCILE, ESCALATION)


def build_jobs(container: ServiceContainer) -> Dict[str, WorkerJob]:
    settings = container.settings

    async def notify() -> BatchResult:
        return await container.dispatcher.process_pending(settings.notification_batch_size)

    async def sync() -> BatchResult:
        return await container.sync.process_pending(settings.sync_batch_size)

    async def reconcile() -> BatchResult:
        await container.reconciliation.run_detection()
        result = BatchResult()
        for repair in await container.reconciliation.process_pending(settings.reconcile_batch_size):
            if repair.success:
                result.processed += 1
            else:
                result.record_failure(repair.error or "repair failed")
        return result

    async def escalation() -> BatchResult:
        summary = await container.escalation.run()
        return BatchResult(processed=summary.actions, skipped=summary.skipped)

    return {
        NOTIFY: WorkerJob(NOTIFY, notify, container.dispatcher.count_pending),
        SYNC: WorkerJob(SYNC, sync, container.sync.count_pending),
        RECONCILE: WorkerJob(RECONCILE, reconcile, container.reconciliation.count_pending),
        ESCALATION: WorkerJob(ESCALATION, escalation, container.escalation.count_pending),
    }


__all__ = ["ESCALATION", "JOB_NAMES", "NOTIFY", "RECONCILE", "SYNC", "build_jobs"]
