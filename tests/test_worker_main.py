from argparse import Namespace

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from schedulehub.apps.worker.jobs import JOB_NAMES, build_jobs
from schedulehub.apps.worker.main import build_scheduler, job_intervals, parse_args, run
from schedulehub.apps.worker.runner import JobRunner
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.models import JobRunStatus


def test_parse_args_defaults():
    args = parse_args([])

    assert args.once is None
    assert args.migrate is False


def test_parse_args_once_and_migrate():
    args = parse_args(["--once", "reconcile", "--migrate"])

    assert args.once == "reconcile"
    assert args.migrate is True


def test_parse_args_rejects_unknown_job():
    with pytest.raises(SystemExit):
        parse_args(["--once", "laundry"])


def test_job_intervals_follow_settings(settings):
    intervals = job_intervals(settings)

    assert set(intervals) == set(JOB_NAMES)
    assert intervals["notify"] == settings.worker_notify_interval_seconds
    assert intervals["escalation"] == settings.worker_escalation_interval_seconds


@pytest.mark.asyncio
async def test_build_scheduler_registers_every_job(container, settings):
    runner = JobRunner(container.locks, container.database.session_factory)
    scheduler = AsyncIOScheduler(timezone="UTC")

    build_scheduler(runner, build_jobs(container), settings, scheduler=scheduler)

    assert sorted(job.id for job in scheduler.get_jobs()) == sorted(f"schedulehub:{name}" for name in JOB_NAMES)


@pytest.mark.asyncio
async def test_run_once_executes_single_job(create_request, container, email, session_factory):
    await create_request()

    exit_code = await run(Namespace(once="notify", migrate=False), container=container)

    assert exit_code == 0
    assert len(email.sent) == 1
    async with UnitOfWork(session_factory) as uow:
        runs = await uow.job_runs.list_recent()
    assert [(item.job_name, item.trigger, item.status) for item in runs] == [
        ("notify", "manual", JobRunStatus.COMPLETED)
    ]
