from datetime import timedelta

import pytest

from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.ats.note_formatter import CancelledNote
from schedulehub.domain.ats.sync import SyncJobProcessor
from schedulehub.domain.models import NotificationStatus, NotificationType, SyncJobStatus
from schedulehub.domain.notifications.dispatcher import NotificationDispatcher, retry_delay

from .conftest import APPLICATION_ID


class MovableClock:
    def __init__(self, offset=timedelta(0)) -> None:
        self.now = utc_now() + offset

    def __call__(self):
        return self.now


async def _link_job(session_factory, request_id):
    async with UnitOfWork(session_factory) as uow:
        jobs = await uow.notifications.list_for_entity("scheduling_request", request_id)
    return next(job for job in jobs if job.type == NotificationType.SELF_SCHEDULE_LINK)


def _cancelled_note():
    return CancelledNote(
        scheduling_request_id="req-9",
        booking_id=None,
        application_id=APPLICATION_ID,
        interviewer_emails=("alice@example.com",),
        organizer_email="scheduling@example.com",
        reason="Position filled",
        cancelled_by="coord",
    )


def test_notification_retry_delay_is_exponential():
    assert [retry_delay(n) for n in (1, 2, 3)] == [
        timedelta(minutes=4),
        timedelta(minutes=16),
        timedelta(minutes=64),
    ]


@pytest.mark.asyncio
async def test_due_job_is_sent_and_attempt_recorded(create_request, container, session_factory, email):
    created, _ = await create_request()

    result = await container.dispatcher.process_pending()

    assert result.processed == 1
    assert result.failed == 0
    assert [message.to for message in email.sent] == ["casey@example.com"]
    assert email.sent[0].subject == "Schedule your interview for Engineer"
    assert created.public_link in email.sent[0].text
    job = await _link_job(session_factory, created.request_id)
    assert job.status == NotificationStatus.SENT
    assert job.sent_at is not None
    async with UnitOfWork(session_factory) as uow:
        attempts = await uow.notification_attempts.list_for_job(job.id)
    assert [(a.attempt_number, a.status) for a in attempts] == [(1, NotificationStatus.SENT)]

    assert (await container.dispatcher.process_pending()).processed == 0


@pytest.mark.asyncio
async def test_failed_send_is_rescheduled(create_request, container, session_factory, email):
    created, _ = await create_request()
    email.fail_next()
    before = utc_now()

    result = await container.dispatcher.process_pending()

    assert result.failed == 1
    assert result.errors == ["injected send failure"]
    job = await _link_job(session_factory, created.request_id)
    assert job.status == NotificationStatus.PENDING
    assert job.attempts == 1
    assert job.last_error == "injected send failure"
    assert job.run_after >= before + timedelta(minutes=4)
    assert job.run_after <= utc_now() + timedelta(minutes=4)
    assert email.sent == []


@pytest.mark.asyncio
async def test_send_gives_up_after_max_attempts(create_request, session_factory, email):
    created, _ = await create_request()
    clock = MovableClock()
    dispatcher = NotificationDispatcher(session_factory, email, clock=clock)
    email.fail_next(times=10)

    job = await _link_job(session_factory, created.request_id)
    for _ in range(job.max_attempts):
        clock.now += timedelta(days=1)
        await dispatcher.process_pending()

    job = await _link_job(session_factory, created.request_id)
    assert job.status == NotificationStatus.FAILED
    assert job.attempts == job.max_attempts
    clock.now += timedelta(days=1)
    assert (await dispatcher.process_pending()).processed == 0
    async with UnitOfWork(session_factory) as uow:
        attempts = await uow.notification_attempts.list_for_job(job.id)
    assert len(attempts) == job.max_attempts


@pytest.mark.asyncio
async def test_sync_job_is_not_due_immediately(container, ats):
    ats.fail_next()
    await container.writeback.write_cancelled_note(_cancelled_note())

    result = await container.sync.process_pending()

    assert result.processed == 0
    assert await container.sync.count_pending() == 1


@pytest.mark.asyncio
async def test_sync_job_retry_succeeds(container, ats, session_factory):
    ats.fail_next()
    written = await container.writeback.write_cancelled_note(_cancelled_note())
    processor = SyncJobProcessor(session_factory, container.writeback, clock=MovableClock(timedelta(hours=2)))

    result = await processor.process_pending()

    assert result.processed == 1
    assert [note.idempotency_key for note in ats.notes] == ["sched-req-9-cancelled"]
    async with UnitOfWork(session_factory) as uow:
        job = (await uow.sync_jobs.get(written.sync_job_id)).unwrap()
        audit = await uow.audit.list_for_request("req-9", action="sync_job_success")
    assert job.status == SyncJobStatus.SUCCEEDED
    assert job.attempts == 1
    assert job.last_error is None
    assert audit[0].payload["sync_job_id"] == job.id


@pytest.mark.asyncio
async def test_sync_job_fails_after_max_attempts(container, ats, session_factory):
    ats.fail_next(times=20)
    written = await container.writeback.write_cancelled_note(_cancelled_note())
    clock = MovableClock()
    processor = SyncJobProcessor(session_factory, container.writeback, clock=clock)

    for attempt in range(1, 6):
        clock.now += timedelta(hours=2)
        result = await processor.process_pending()
        assert result.failed == 1
        async with UnitOfWork(session_factory) as uow:
            job = (await uow.sync_jobs.get(written.sync_job_id)).unwrap()
        assert job.attempts == attempt

    assert job.status == SyncJobStatus.FAILED
    assert ats.notes == []
    async with UnitOfWork(session_factory) as uow:
        failed = await uow.audit.list_for_request("req-9", action="sync_job_failed")
    assert failed[0].payload["attempts"] == 5
