from datetime import timedelta

import pytest

from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.ats.note_formatter import CancelledNote
from schedulehub.domain.ats.writeback import (
    BACKOFF_LADDER,
    SYNC_JOB_TYPE,
    NoteType,
    next_run_after,
    note_idempotency_key,
)
from schedulehub.domain.models import SyncJobStatus

from .conftest import APPLICATION_ID


def _cancelled_note(application_id=APPLICATION_ID):
    return CancelledNote(
        scheduling_request_id="req-1",
        booking_id=None,
        application_id=application_id,
        interviewer_emails=("alice@example.com",),
        organizer_email="scheduling@example.com",
        reason="Candidate withdrew",
        cancelled_by="coord",
    )


def test_backoff_ladder_clamps_to_last_rung():
    now = utc_now()
    assert next_run_after(0, now) - now == timedelta(minutes=1)
    assert next_run_after(3, now) - now == timedelta(minutes=30)
    assert next_run_after(12, now) - now == BACKOFF_LADDER[-1]


def test_note_idempotency_key():
    assert note_idempotency_key("book-1", NoteType.BOOKED) == "sched-book-1-booked"


@pytest.mark.asyncio
async def test_write_is_skipped_without_application_id(container, ats):
    result = await container.writeback.write_cancelled_note(_cancelled_note(application_id=None))

    assert result.success and result.skipped
    assert ats.notes == []


@pytest.mark.asyncio
async def test_successful_write_uses_idempotency_key(container, ats, session_factory):
    result = await container.writeback.write_cancelled_note(_cancelled_note())

    assert result.success and not result.skipped
    assert result.activity_id == ats.notes[0].activity_id
    assert ats.notes[0].idempotency_key == "sched-req-1-cancelled"
    assert ats.notes[0].text.startswith("=== INTERVIEW CANCELLED ===")

    async with UnitOfWork(session_factory) as uow:
        actions = [entry.action for entry in await uow.audit.list_for_request("req-1")]
    assert sorted(actions) == ["icims_note_attempt", "icims_note_success"]


@pytest.mark.asyncio
async def test_failed_write_creates_sync_job(container, ats, session_factory):
    ats.fail_next()

    result = await container.writeback.write_cancelled_note(_cancelled_note())

    assert not result.success
    assert result.sync_job_id is not None
    async with UnitOfWork(session_factory) as uow:
        job = (await uow.sync_jobs.get(result.sync_job_id)).unwrap()
        actions = [entry.action for entry in await uow.audit.list_for_request("req-1")]
    assert job.type == SYNC_JOB_TYPE
    assert job.status == SyncJobStatus.PENDING
    assert job.attempts == 0
    assert job.payload["application_id"] == APPLICATION_ID
    assert job.payload["note_type"] == NoteType.CANCELLED
    assert job.payload["note_text"].startswith("=== INTERVIEW CANCELLED ===")
    assert "injected failure" in job.last_error
    assert sorted(actions) == ["icims_note_attempt", "icims_note_failed", "sync_job_created"]


@pytest.mark.asyncio
async def test_booking_records_ats_activity(book_first_slot, session_factory, ats):
    _, _, booked = await book_first_slot()

    async with UnitOfWork(session_factory) as uow:
        booking = (await uow.bookings.get(booked.booking.booking_id)).unwrap()
    booked_notes = [note for note in ats.notes_for(APPLICATION_ID) if "INTERVIEW BOOKED" in note.text]
    assert len(booked_notes) == 1
    assert booking.ats_activity_id == booked_notes[0].activity_id


@pytest.mark.asyncio
async def test_booking_succeeds_when_ats_is_down(book_first_slot, session_factory, ats):
    # link note and booked note both fail
    ats.fail_next(times=2)

    _, _, booked = await book_first_slot()

    assert booked.success
    async with UnitOfWork(session_factory) as uow:
        booking = (await uow.bookings.get(booked.booking.booking_id)).unwrap()
        jobs = await uow.sync_jobs.list_for_entity(booking.id)
    assert booking.ats_activity_id is None
    assert [job.payload["note_type"] for job in jobs] == [NoteType.BOOKED]
