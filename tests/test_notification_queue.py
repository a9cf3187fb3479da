from datetime import timedelta

import pytest

from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.models import (
    Booking,
    BookingStatus,
    NotificationStatus,
    NotificationType,
    SchedulingRequest,
)
from schedulehub.domain.notifications.queue import build_idempotency_key, hour_bucket


async def _persist_request_and_booking(session_factory, *, starts_in: timedelta):
    now = utc_now()
    start = (now + starts_in).replace(second=0, microsecond=0)
    async with UnitOfWork(session_factory) as uow:
        request = SchedulingRequest(
            candidate_name="Casey Candidate",
            candidate_email="casey@example.com",
            duration_minutes=60,
            interviewer_emails=["alice@example.com"],
            organizer_email="scheduling@example.com",
            window_start=start - timedelta(hours=1),
            window_end=start + timedelta(hours=4),
            candidate_timezone="UTC",
            public_token_hash=f"hash-{start.timestamp()}",
            expires_at=now + timedelta(days=14),
        )
        (await uow.requests.add(request)).unwrap()
        booking = Booking(
            request_id=request.id,
            scheduled_start=start,
            scheduled_end=start + timedelta(hours=1),
            status=BookingStatus.CONFIRMED,
            confirmed_at=now,
        )
        (await uow.bookings.add(booking)).unwrap()
        await uow.commit()
    return request, booking


def test_idempotency_key_format():
    assert build_idempotency_key("booking_confirmation", "booking", "b-1") == "booking_confirmation:booking:b-1"
    assert build_idempotency_key("reminder_2h", "booking", "b-1", "2030-01-01T09") == (
        "reminder_2h:booking:b-1:2030-01-01T09"
    )


@pytest.mark.asyncio
async def test_enqueue_twice_returns_same_job(container, session_factory):
    request, booking = await _persist_request_and_booking(session_factory, starts_in=timedelta(days=2))

    first = await container.notifications.enqueue_booking_confirmation_notification(request, booking)
    second = await container.notifications.enqueue_booking_confirmation_notification(request, booking)

    assert first.id == second.id
    async with UnitOfWork(session_factory) as uow:
        jobs = await uow.notifications.list_for_entity("booking", booking.id)
    assert len(jobs) == 1
    assert jobs[0].status == NotificationStatus.PENDING
    assert jobs[0].payload["scheduled_start_utc"].endswith("Z")


@pytest.mark.asyncio
async def test_reminders_scheduled_before_start(container, session_factory):
    request, booking = await _persist_request_and_booking(session_factory, starts_in=timedelta(hours=48))

    reminders = await container.notifications.enqueue_reminder_notifications(request, booking)

    assert reminders.reminder_24h.run_after == booking.scheduled_start - timedelta(hours=24)
    assert reminders.reminder_2h.run_after == booking.scheduled_start - timedelta(hours=2)
    assert reminders.reminder_2h.idempotency_key.endswith(hour_bucket(reminders.reminder_2h.run_after))
    assert reminders.reminder_24h.payload["hours_until"] == 24


@pytest.mark.asyncio
async def test_reminders_in_the_past_are_skipped(container, session_factory):
    request, booking = await _persist_request_and_booking(session_factory, starts_in=timedelta(hours=1))

    reminders = await container.notifications.enqueue_reminder_notifications(request, booking)

    assert reminders.reminder_24h is None
    assert reminders.reminder_2h is None


@pytest.mark.asyncio
async def test_cancel_pending_reminders_leaves_sent_jobs(container, session_factory):
    request, booking = await _persist_request_and_booking(session_factory, starts_in=timedelta(hours=48))
    reminders = await container.notifications.enqueue_reminder_notifications(request, booking)
    async with UnitOfWork(session_factory) as uow:
        sent = (await uow.notifications.get(reminders.reminder_24h.id)).unwrap()
        sent.status = NotificationStatus.SENT
        await uow.commit()

    cancelled = await container.notifications.cancel_pending_reminders(booking.id)

    assert cancelled == 1
    async with UnitOfWork(session_factory) as uow:
        jobs = {job.type: job for job in await uow.notifications.list_for_entity("booking", booking.id)}
    assert jobs[NotificationType.REMINDER_24H].status == NotificationStatus.SENT
    assert jobs[NotificationType.REMINDER_2H].status == NotificationStatus.CANCELED


@pytest.mark.asyncio
async def test_resends_get_distinct_keys(container, session_factory):
    request, _ = await _persist_request_and_booking(session_factory, starts_in=timedelta(days=2))
    now = utc_now()

    first = await container.notifications.enqueue_resend_self_schedule_link(request, "https://x/book/a", now=now)
    second = await container.notifications.enqueue_resend_self_schedule_link(
        request, "https://x/book/b", now=now + timedelta(seconds=1)
    )

    assert first.id != second.id
    assert first.payload["is_resend"] is True
