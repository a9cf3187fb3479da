from datetime import timedelta

import pytest

from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork
from schedulehub.domain.escalation import coordinator_email_for
from schedulehub.domain.models import NotificationType, RequestStatus


async def _age_request(session_factory, request_id, hours):
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(request_id)).unwrap()
        request.created_at = utc_now() - timedelta(hours=hours)
        await uow.commit()


async def _jobs_by_type(session_factory, request_id):
    async with UnitOfWork(session_factory) as uow:
        jobs = await uow.notifications.list_for_entity("scheduling_request", request_id)
    return {job.type: job for job in jobs}


@pytest.mark.asyncio
async def test_fresh_request_is_left_alone(create_request, container):
    await create_request()

    summary = await container.escalation.run()

    assert summary.checked == 0
    assert summary.actions == 0


@pytest.mark.asyncio
async def test_nudge_sent_once_after_two_days(create_request, container, session_factory):
    created, _ = await create_request()
    await _age_request(session_factory, created.request_id, 49)

    first = await container.escalation.run()
    second = await container.escalation.run()

    assert (first.checked, first.nudges) == (1, 1)
    assert (second.nudges, second.skipped) == (0, 1)
    jobs = await _jobs_by_type(session_factory, created.request_id)
    nudge = jobs[NotificationType.NUDGE_REMINDER]
    assert nudge.to_email == "casey@example.com"
    assert nudge.payload["public_link"] == created.public_link
    assert nudge.payload["days_since_request"] == 2


@pytest.mark.asyncio
async def test_urgent_nudge_follows_first_nudge(create_request, container, session_factory):
    created, _ = await create_request()
    await _age_request(session_factory, created.request_id, 49)
    await container.escalation.run()
    await _age_request(session_factory, created.request_id, 97)

    summary = await container.escalation.run()

    assert summary.urgent_nudges == 1
    jobs = await _jobs_by_type(session_factory, created.request_id)
    assert jobs[NotificationType.NUDGE_REMINDER_URGENT].payload["is_urgent"] is True


@pytest.mark.asyncio
async def test_first_nudge_sent_when_urgent_threshold_reached_without_one(create_request, container, session_factory):
    created, _ = await create_request()
    await _age_request(session_factory, created.request_id, 97)

    summary = await container.escalation.run()

    assert (summary.nudges, summary.urgent_nudges) == (1, 0)


@pytest.mark.asyncio
async def test_coordinator_escalation_after_five_days(create_request, container, session_factory):
    created, _ = await create_request()
    await _age_request(session_factory, created.request_id, 121)

    first = await container.escalation.run()
    second = await container.escalation.run()

    assert first.escalations == 1
    assert second.escalations == 0
    jobs = await _jobs_by_type(session_factory, created.request_id)
    escalation = jobs[NotificationType.ESCALATION_NO_RESPONSE]
    assert escalation.to_email == "coord@example.com"
    assert escalation.payload["days_since_request"] == 5


@pytest.mark.asyncio
async def test_request_expires_after_a_week(create_request, container, session_factory):
    created, _ = await create_request()
    await _age_request(session_factory, created.request_id, 169)

    summary = await container.escalation.run()

    assert summary.expired == 1
    details = await container.scheduling.get_request(created.request_id)
    assert details.status == RequestStatus.EXPIRED
    jobs = await _jobs_by_type(session_factory, created.request_id)
    assert jobs[NotificationType.ESCALATION_EXPIRED].to_email == "coord@example.com"
    async with UnitOfWork(session_factory) as uow:
        audit = await uow.audit.list_for_request(created.request_id, action="request_expired")
    assert audit[0].payload["reason"] == "no_response"

    assert (await container.escalation.run()).checked == 0


@pytest.mark.asyncio
async def test_booked_requests_are_not_escalated(book_first_slot, container, session_factory):
    request_id, _, _ = await book_first_slot()
    await _age_request(session_factory, request_id, 169)

    summary = await container.escalation.run()

    assert summary.checked == 0


def test_coordinator_email_falls_back_to_organizer():
    class Request:
        created_by = "coordinator-42"
        organizer_email = "scheduling@example.com"

    assert coordinator_email_for(Request()) == "scheduling@example.com"
    Request.created_by = "lead@example.com"
    assert coordinator_email_for(Request()) == "lead@example.com"
