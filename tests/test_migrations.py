import pytest
from sqlalchemy import create_engine, inspect

from schedulehub.container import ServiceContainer
from schedulehub.core.db import Database
from schedulehub.domain.base import Base
from schedulehub.domain.locks import MemoryLockService
from schedulehub.domain.scheduling.types import CreateRequestInput
from schedulehub.migrations.runner import current_revision, discover_migrations, upgrade_to_head

from .conftest import INTERVIEWERS, interview_window


def test_migration_chain_is_linear():
    revisions = [migration.revision for migration in discover_migrations()]

    assert revisions[0] == "0001_initial_schema"
    assert revisions == sorted(revisions)


def test_upgrade_to_head_is_idempotent(tmp_path):
    url = f"sqlite:///{tmp_path / 'sync.db'}"

    assert upgrade_to_head(url) == ["0001_initial_schema"]
    assert upgrade_to_head(url) == []

    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            assert current_revision(conn) == "0001_initial_schema"
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert set(Base.metadata.tables) <= tables


@pytest.mark.asyncio
async def test_migrated_schema_serves_the_application(tmp_path, settings, calendar, ats, email):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}", settings)
    try:
        assert await database.migrate() == ["0001_initial_schema"]
        assert await database.migrate() == []

        container = ServiceContainer.build(
            settings, database=database, calendar=calendar, ats=ats, email=email, locks=MemoryLockService()
        )
        window_start, window_end = interview_window()
        created = await container.scheduling.create_request(
            CreateRequestInput(
                candidate_name="Casey Candidate",
                candidate_email="casey@example.com",
                interviewer_emails=list(INTERVIEWERS),
                duration_minutes=30,
                window_start=window_start,
                window_end=window_end,
                candidate_timezone="UTC",
            ),
            created_by="coord@example.com",
        )
        details = await container.scheduling.get_request(created.request_id)
        assert details.status == "pending"
    finally:
        await database.dispose()
