"""Worker entrypoint: ``python -m schedulehub.apps.worker [--once JOB]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from schedulehub.container import ServiceContainer
from schedulehub.core.logging import configure_logging
from schedulehub.core.settings import Settings, get_settings
from schedulehub.domain.models import JobRunStatus

from .jobs import ESCALATION, JOB_NAMES, NOTIFY, RECONCILE, SYNC, build_jobs
from .runner import JobRunner, WorkerJob

logger = logging.getLogger(__name__)


def job_intervals(settings: Settings) -> Dict[str, int]:
    return {
        NOTIFY: settings.worker_notify_interval_seconds,
        SYNC: settings.worker_sync_interval_seconds,
        RECONCILE: settings.worker_reconcile_interval_seconds,
        ESCALATION: settings.worker_escalation_interval_seconds,
    }


def build_scheduler(
    runner: JobRunner,
    jobs: Dict[str, WorkerJob],
    settings: Settings,
    *,
    scheduler: Optional[AsyncIOScheduler] = None,
) -> AsyncIOScheduler:
    scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
    now = datetime.now(timezone.utc)
    for name, interval in job_intervals(settings).items():
        scheduler.add_job(
            runner.run,
            "interval",
            args=[jobs[name]],
            seconds=interval,
            id=f"schedulehub:{name}",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=max(interval * 2, 1),
            next_run_time=now,
        )
    return scheduler


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the scheduling background worker.")
    parser.add_argument("--once", choices=JOB_NAMES, help="Run a single job once and exit.")
    parser.add_argument("--migrate", action="store_true", help="Apply database migrations before starting.")
    return parser.parse_args(argv)


async def _serve(runner: JobRunner, jobs: Dict[str, WorkerJob], settings: Settings) -> None:
    scheduler = build_scheduler(runner, jobs, settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows event loop
            pass

    scheduler.start()
    logger.info("worker.started", extra={"jobs": list(jobs), "intervals": job_intervals(settings)})
    try:
        await stop.wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("worker.stopped")


async def run(args: argparse.Namespace, *, container: Optional[ServiceContainer] = None) -> int:
    owns_container = container is None
    container = container or ServiceContainer.build()
    try:
        if args.migrate:
            applied = await container.database.migrate()
            logger.info("worker.migrations_applied", extra={"revisions": applied})

        runner = JobRunner(
            container.locks,
            container.database.session_factory,
            lock_ttl_seconds=container.settings.lock_ttl_seconds,
        )
        jobs = build_jobs(container)

        if args.once:
            job_run = await runner.run(jobs[args.once], trigger="manual")
            return 1 if job_run.status == JobRunStatus.FAILED else 0

        await _serve(runner, jobs, container.settings)
        return 0
    finally:
        if owns_container:
            await container.close()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(get_settings())
    return asyncio.run(run(args))


__all__ = ["build_scheduler", "job_intervals", "main", "parse_args", "run"]
