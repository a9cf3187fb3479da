import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

_DATA_DIR = tempfile.mkdtemp(prefix="schedulehub-tests-")

TEST_ENV = {
    "ENVIRONMENT": "test",
    "DATA_DIR": _DATA_DIR,
    "DATABASE_URL": f"sqlite+aiosqlite:///{_DATA_DIR}/schedulehub.db",
    "REDIS_URL": "",
    "LOCK_BACKEND": "memory",
    "TOKEN_HASH_PEPPER": "test-pepper-0123456789abcdef0123456789abcdef",
    "PUBLIC_BASE_URL": "https://schedule.example.com",
    "ORGANIZER_EMAIL": "scheduling@example.com",
    "CALENDAR_PROVIDER": "memory",
    "ATS_PROVIDER": "memory",
    "ATS_SYNC_ENABLED": "true",
    "EMAIL_MODE": "console",
    "LOG_FILE": os.path.join(_DATA_DIR, "test.log"),
    "METRICS_ENABLED": "true",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from schedulehub.container import ServiceContainer  # noqa: E402
from schedulehub.core.db import Database  # noqa: E402
from schedulehub.core.settings import get_settings  # noqa: E402
from schedulehub.domain.locks import MemoryLockService  # noqa: E402
from schedulehub.domain.scheduling.types import CreateRequestInput  # noqa: E402
from schedulehub.integrations.ats.base import ApplicationSummary  # noqa: E402
from schedulehub.integrations.ats.memory import InMemoryAtsClient  # noqa: E402
from schedulehub.integrations.calendar.memory import InMemoryCalendarClient  # noqa: E402
from schedulehub.integrations.email.console import InMemoryEmailTransport  # noqa: E402

INTERVIEWERS = ["alice@example.com", "bob@example.com"]
APPLICATION_ID = "APP-1001"


@pytest.fixture(scope="session", autouse=True)
def _set_test_env():
    """Force deterministic env for tests and reset cached settings."""
    for key, value in TEST_ENV.items():
        os.environ[key] = value
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
async def database(tmp_path, settings):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", settings)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest.fixture
def calendar():
    return InMemoryCalendarClient()


@pytest.fixture
def ats():
    client = InMemoryAtsClient()
    client.add_application(
        ApplicationSummary(
            id=APPLICATION_ID,
            candidate_name="Casey Candidate",
            candidate_email="casey@example.com",
            requisition_id="REQ-1",
            requisition_title="Engineer",
        )
    )
    return client


@pytest.fixture
def email():
    return InMemoryEmailTransport()


@pytest.fixture
def container(settings, database, calendar, ats, email):
    return ServiceContainer.build(
        settings,
        database=database,
        calendar=calendar,
        ats=ats,
        email=email,
        locks=MemoryLockService(),
    )


@pytest.fixture
def scheduling(container):
    return container.scheduling


def interview_window(days_ahead: int = 2, hours: int = 8):
    """A UTC window starting at 09:00 a few days from now."""
    start = (datetime.now(timezone.utc) + timedelta(days=days_ahead)).replace(
        hour=9, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(hours=hours)


def token_from_link(link: str) -> str:
    return link.rsplit("/book/", 1)[1]


@pytest.fixture
def create_request(scheduling):
    """Factory creating a pending request; returns ``(result, token)``."""

    async def _create(**overrides):
        window_start, window_end = interview_window()
        data = {
            "candidate_name": "Casey Candidate",
            "candidate_email": "casey@example.com",
            "interviewer_emails": list(INTERVIEWERS),
            "duration_minutes": 60,
            "window_start": window_start,
            "window_end": window_end,
            "candidate_timezone": "America/New_York",
            "application_id": APPLICATION_ID,
            "requisition_title": "Engineer",
        }
        data.update(overrides)
        result = await scheduling.create_request(CreateRequestInput(**data), created_by="coord@example.com")
        return result, token_from_link(result.public_link)

    return _create


@pytest.fixture
def book_first_slot(scheduling, create_request):
    """Factory creating a request and booking its first slot; returns ``(request_id, token, book_result)``."""

    async def _book(**overrides):
        created, token = await create_request(**overrides)
        slots = await scheduling.get_available_slots(token)
        booked = await scheduling.book_slot(token, slots.slots[0].slot_id)
        return created.request_id, token, booked

    return _book
