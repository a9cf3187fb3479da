from datetime import timedelta

import pytest

from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.models import (
    ReconciliationJobStatus,
    ReconciliationJobType,
    RequestStatus,
)
from schedulehub.domain.reconciliation import ReconciliationService, retry_delay

from .conftest import APPLICATION_ID


class MovableClock:
    def __init__(self) -> None:
        self.now = utc_now()

    def __call__(self):
        return self.now


async def _age_booking(session_factory, booking_id, **changes):
    async with UnitOfWork(session_factory) as uow:
        booking = (await uow.bookings.get(booking_id)).unwrap()
        booking.confirmed_at = utc_now() - timedelta(hours=25)
        for name, value in changes.items():
            setattr(booking, name, value)
        await uow.commit()


def test_retry_delay_doubles():
    assert [retry_delay(n) for n in (1, 2, 3)] == [timedelta(minutes=2), timedelta(minutes=4), timedelta(minutes=8)]


@pytest.mark.asyncio
async def test_state_mismatch_detected_once_and_repaired(book_first_slot, container, session_factory):
    request_id, _, _ = await book_first_slot()
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(request_id)).unwrap()
        request.status = RequestStatus.PENDING
        await uow.commit()

    detected = await container.reconciliation.run_detection()
    assert [(item.job_type, item.entity_id) for item in detected] == [
        (ReconciliationJobType.STATE_MISMATCH, request_id)
    ]
    assert await container.reconciliation.run_detection() == []
    assert await container.reconciliation.count_pending() == 1

    results = await container.reconciliation.process_pending()

    assert [result.success for result in results] == [True]
    assert results[0].action == "Updated request status to booked"
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(request_id)).unwrap()
        jobs = await uow.reconciliation_jobs.list_for_entity(request_id)
        audit = await uow.audit.list_by_action("reconciliation_detected")
    assert request.status == RequestStatus.BOOKED
    assert jobs[0].status == ReconciliationJobStatus.REPAIRED
    assert len(audit) == 1


@pytest.mark.asyncio
async def test_expired_pending_request_is_marked_expired(create_request, container, session_factory):
    created, _ = await create_request()
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(created.request_id)).unwrap()
        request.expires_at = utc_now() - timedelta(hours=1)
        await uow.commit()

    await container.reconciliation.run_detection()
    results = await container.reconciliation.process_pending()

    assert results[0].success
    details = await container.scheduling.get_request(created.request_id)
    assert details.status == RequestStatus.EXPIRED


@pytest.mark.asyncio
async def test_missing_ats_note_is_written_with_booking_key(book_first_slot, container, session_factory, ats):
    ats.fail_next(times=2)
    _, _, booked = await book_first_slot()
    booking_id = booked.booking.booking_id
    await _age_booking(session_factory, booking_id)

    detected = await container.reconciliation.run_detection()
    assert (ReconciliationJobType.ICIMS_NOTE_MISSING, booking_id) in [
        (item.job_type, item.entity_id) for item in detected
    ]

    results = await container.reconciliation.process_pending()

    assert all(result.success for result in results)
    notes = [note for note in ats.notes_for(APPLICATION_ID) if note.idempotency_key == f"sched-{booking_id}-booked"]
    assert len(notes) == 1
    async with UnitOfWork(session_factory) as uow:
        booking = (await uow.bookings.get(booking_id)).unwrap()
    assert booking.ats_activity_id == notes[0].activity_id


@pytest.mark.asyncio
async def test_ats_note_not_checked_without_application(book_first_slot, container, session_factory, ats):
    _, _, booked = await book_first_slot(application_id=None)
    await _age_booking(session_factory, booked.booking.booking_id)

    assert await container.reconciliation.run_detection() == []


@pytest.mark.asyncio
async def test_ats_detection_is_not_starved_by_unlinked_bookings(book_first_slot, container, session_factory):
    for _ in range(3):
        _, _, unlinked = await book_first_slot(application_id=None)
        await _age_booking(session_factory, unlinked.booking.booking_id, ats_activity_id=None)
    _, _, linked = await book_first_slot()
    booking_id = linked.booking.booking_id
    await _age_booking(session_factory, booking_id, ats_activity_id=None)

    async with UnitOfWork(session_factory) as uow:
        stale = await uow.bookings.list_confirmed_missing_ats_note(utc_now() - timedelta(hours=24), limit=2)
    assert [booking.id for booking in stale] == [booking_id]

    detected = await container.reconciliation.run_detection()
    assert [(item.job_type, item.entity_id) for item in detected] == [
        (ReconciliationJobType.ICIMS_NOTE_MISSING, booking_id)
    ]

    # Already queued for repair, so the listing moves on.
    async with UnitOfWork(session_factory) as uow:
        stale = await uow.bookings.list_confirmed_missing_ats_note(utc_now() - timedelta(hours=24), limit=2)
    assert stale == []


@pytest.mark.asyncio
async def test_missing_calendar_event_is_recreated(book_first_slot, container, session_factory, calendar):
    _, _, booked = await book_first_slot()
    booking_id = booked.booking.booking_id
    await _age_booking(session_factory, booking_id, calendar_event_id=None)

    detected = await container.reconciliation.run_detection()
    assert [item.job_type for item in detected] == [ReconciliationJobType.CALENDAR_EVENT_MISSING]

    results = await container.reconciliation.process_pending()

    assert results[0].success
    async with UnitOfWork(session_factory) as uow:
        booking = (await uow.bookings.get(booking_id)).unwrap()
    assert booking.calendar_event_id == "evt-2"
    assert len(calendar.live_events()) == 2


@pytest.mark.asyncio
async def test_repair_failures_back_off_then_flag_request(book_first_slot, session_factory, calendar, ats):
    request_id, _, booked = await book_first_slot()
    booking_id = booked.booking.booking_id
    await _age_booking(session_factory, booking_id, calendar_event_id=None)
    clock = MovableClock()
    service = ReconciliationService(session_factory, calendar, ats, max_attempts=3, clock=clock)
    calendar.fail_next("create_event", times=3)

    await service.run_detection()
    for _ in range(3):
        results = await service.process_pending()
        assert [result.success for result in results] == [False]
        # nothing else is due until the backoff elapses
        assert await service.process_pending() == []
        clock.now += timedelta(minutes=10)

    async with UnitOfWork(session_factory) as uow:
        jobs = await uow.reconciliation_jobs.list_for_entity(booking_id)
        request = (await uow.requests.get(request_id)).unwrap()
        flagged = await uow.audit.list_by_action("needs_attention_set")
    assert jobs[0].status == ReconciliationJobStatus.FAILED
    assert jobs[0].attempts == 3
    assert "injected create_event failure" in jobs[0].last_error
    assert request.needs_attention
    assert request.needs_attention_reason.startswith("Booking reconciliation failed:")
    assert [entry.booking_id for entry in flagged] == [booking_id]
