from datetime import timedelta

import httpx
import pytest

from schedulehub.apps.api.app import create_app
from schedulehub.core.timezone_utils import utc_now
from schedulehub.core.uow import UnitOfWork

from .conftest import APPLICATION_ID, INTERVIEWERS, interview_window, token_from_link


@pytest.fixture
async def client(container):
    app = create_app(container)
    # ASGITransport does not run the lifespan hook
    app.state.container = container
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


def _create_payload(**overrides):
    window_start, window_end = interview_window()
    payload = {
        "candidate_name": "Casey Candidate",
        "candidate_email": "casey@example.com",
        "interviewer_emails": list(INTERVIEWERS),
        "duration_minutes": 60,
        "window_start": window_start.isoformat(),
        "window_end": window_end.isoformat(),
        "candidate_timezone": "America/New_York",
        "application_id": APPLICATION_ID,
        "requisition_title": "Engineer",
    }
    payload.update(overrides)
    return payload


async def _create(client, **overrides):
    response = await client.post(
        "/api/scheduling-requests", json=_create_payload(**overrides), headers={"X-Actor-Id": "coord@example.com"}
    )
    assert response.status_code == 201, response.text
    body = response.json()
    return body, token_from_link(body["public_link"])


async def _book_first(client):
    created, token = await _create(client)
    slots = (await client.get(f"/api/public/book/{token}")).json()["slots"]
    response = await client.post(f"/api/public/book/{token}", json={"slot_id": slots[0]["slot_id"]})
    assert response.status_code == 200, response.text
    return created["request_id"], token, slots, response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "checks": {"database": "ok", "lock_backend": "memory"}}


@pytest.mark.asyncio
async def test_metrics_exposed_when_enabled(client):
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_create_request_records_actor(client, session_factory):
    created, _ = await _create(client)

    assert created["public_link"].startswith("https://schedule.example.com/book/")
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(created["request_id"])).unwrap()
    assert request.created_by == "coord@example.com"


@pytest.mark.asyncio
async def test_public_slots_and_booking(client):
    request_id, _, slots, booked = await _book_first(client)

    assert len(slots) == 29
    assert slots[0]["display_start"]
    assert booked["success"] is True
    assert booked["booking"]["status"] == "confirmed"
    assert booked["booking"]["calendar_event_id"] == "evt-1"

    details = (await client.get(f"/api/scheduling-requests/{request_id}")).json()
    assert details["status"] == "booked"
    assert details["booking"]["booking_id"] == booked["booking"]["booking_id"]
    assert details["interviewer_emails"] == INTERVIEWERS


@pytest.mark.asyncio
async def test_double_booking_is_a_conflict(client):
    _, token, slots, _ = await _book_first(client)

    response = await client.post(f"/api/public/book/{token}", json={"slot_id": slots[1]["slot_id"]})

    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


@pytest.mark.asyncio
async def test_reschedule_through_api(client):
    request_id, _, _, booked = await _book_first(client)
    options = (await client.get(f"/api/scheduling-requests/{request_id}/reschedule-slots")).json()["slots"]
    target = options[-1]

    response = await client.post(
        f"/api/scheduling-requests/{request_id}/reschedule",
        json={"new_start": target["start"], "reason": "Panel change"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "rescheduled"
    assert body["booking_id"] == booked["booking"]["booking_id"]


@pytest.mark.asyncio
async def test_cancel_and_resend_rules(client):
    created, _ = await _create(client)
    request_id = created["request_id"]

    resent = await client.post(f"/api/scheduling-requests/{request_id}/resend-link")
    assert resent.status_code == 200
    assert resent.json()["public_link"] != created["public_link"]
    assert resent.json()["notification_id"]

    no_booking = await client.post(f"/api/scheduling-requests/{request_id}/resend-confirmation")
    assert no_booking.status_code == 409

    cancelled = await client.post(f"/api/scheduling-requests/{request_id}/cancel", json={"reason": "Role closed"})
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    again = await client.post(f"/api/scheduling-requests/{request_id}/resend-link")
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"


@pytest.mark.asyncio
async def test_resend_confirmation_returns_job(client):
    request_id, _, _, _ = await _book_first(client)

    response = await client.post(f"/api/scheduling-requests/{request_id}/resend-confirmation")

    assert response.status_code == 200
    assert response.json()["notification_id"]


@pytest.mark.asyncio
async def test_unknown_ids_are_not_found(client):
    assert (await client.get("/api/public/book/nope")).status_code == 404
    response = await client.get("/api/scheduling-requests/missing")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_domain_validation_reports_field(client):
    response = await client.post("/api/scheduling-requests", json=_create_payload(candidate_timezone="Mars/Olympus"))

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["field"] == "candidate_timezone"
    assert body["message"]


@pytest.mark.asyncio
async def test_malformed_payload_is_rejected(client):
    response = await client.post("/api/scheduling-requests", json={"candidate_name": "Casey"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_expired_link_is_gone(client, session_factory):
    created, token = await _create(client)
    async with UnitOfWork(session_factory) as uow:
        request = (await uow.requests.get(created["request_id"])).unwrap()
        request.expires_at = utc_now() - timedelta(minutes=5)
        await uow.commit()

    response = await client.get(f"/api/public/book/{token}")

    assert response.status_code == 410
    assert response.json()["error"] == "expired"


@pytest.mark.asyncio
async def test_calendar_failure_maps_to_bad_gateway(client, calendar):
    _, token = await _create(client)
    slots = (await client.get(f"/api/public/book/{token}")).json()["slots"]
    calendar.fail_next("create_event")

    response = await client.post(f"/api/public/book/{token}", json={"slot_id": slots[0]["slot_id"]})

    assert response.status_code == 502
    assert response.json()["error"] == "collaborator_error"
