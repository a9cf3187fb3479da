import pytest

from schedulehub.apps.worker.jobs import JOB_NAMES, NOTIFY, build_jobs
from schedulehub.apps.worker.runner import JobRunner, WorkerJob
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.batch import BatchResult
from schedulehub.domain.models import JobRunStatus


@pytest.fixture
def runner(container, session_factory):
    return JobRunner(container.locks, session_factory, lock_ttl_seconds=60)


def test_build_jobs_covers_every_job(container):
    jobs = build_jobs(container)

    assert tuple(jobs) == JOB_NAMES
    assert all(job.name == name for name, job in jobs.items())


@pytest.mark.asyncio
async def test_completed_run_records_counters(create_request, container, runner, session_factory):
    await create_request()

    run = await runner.run(build_jobs(container)[NOTIFY], trigger="manual")

    assert run.status == JobRunStatus.COMPLETED
    assert run.trigger == "manual"
    assert (run.processed, run.failed) == (1, 0)
    assert (run.queue_depth_before, run.queue_depth_after) == (1, 0)
    assert run.error_summary is None
    assert not await container.locks.is_held(NOTIFY)
    async with UnitOfWork(session_factory) as uow:
        stored = await uow.job_runs.list_recent(NOTIFY)
    assert [item.id for item in stored] == [run.id]


@pytest.mark.asyncio
async def test_run_is_skipped_while_another_worker_holds_the_lock(container, runner):
    await container.locks.acquire(NOTIFY, "other-worker", 60)

    run = await runner.run(build_jobs(container)[NOTIFY])

    assert run.status == JobRunStatus.LOCKED
    assert run.error_summary == "lock held by other-worker"
    assert (await container.locks.get_holder(NOTIFY)).locked_by == "other-worker"


@pytest.mark.asyncio
async def test_crashing_job_is_recorded_and_releases_lock(container, runner):
    async def explode() -> BatchResult:
        raise RuntimeError("kaboom")

    async def depth() -> int:
        return 3

    run = await runner.run(WorkerJob("explode", explode, depth))

    assert run.status == JobRunStatus.FAILED
    assert run.error_summary == "kaboom"
    assert run.queue_depth_before == 3
    assert run.queue_depth_after is None
    assert not await container.locks.is_held("explode")


@pytest.mark.asyncio
async def test_item_errors_are_summarized(container, runner):
    async def partial() -> BatchResult:
        result = BatchResult(processed=2)
        for index in range(7):
            result.record_failure(f"job-{index}")
        return result

    async def depth() -> int:
        return 0

    run = await runner.run(WorkerJob("partial", partial, depth))

    assert run.status == JobRunStatus.COMPLETED
    assert (run.processed, run.failed) == (2, 7)
    assert run.error_summary == "job-0; job-1; job-2; job-3; job-4 (+2 more)"
