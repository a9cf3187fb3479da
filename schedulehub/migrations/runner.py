"""Minimal migration runner inspired by Alembic.

Migration modules live in ``schedulehub.migrations.versions`` and are applied
in revision order while the current revision is tracked in the
``alembic_version`` table. Each module exposes ``revision``,
``down_revision`` and an ``upgrade(conn)`` callable taking a synchronous
SQLAlchemy connection, so the same modules run under a plain engine or
through ``AsyncConnection.run_sync``.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

MIGRATIONS_PACKAGE = "schedulehub.migrations.versions"
VERSION_TABLE = "alembic_version"
VERSION_COLUMN = "version_num"


@dataclass(frozen=True)
class MigrationModule:
    revision: str
    down_revision: Optional[str]
    module: ModuleType


def discover_migrations() -> List[MigrationModule]:
    package = importlib.import_module(MIGRATIONS_PACKAGE)
    package_path = Path(package.__file__).resolve().parent
    modules: List[MigrationModule] = []

    for module_info in pkgutil.iter_modules([str(package_path)]):
        if module_info.ispkg or module_info.name.startswith("_"):
            continue
        module = importlib.import_module(f"{MIGRATIONS_PACKAGE}.{module_info.name}")
        revision = getattr(module, "revision", None)
        if revision is None:
            raise RuntimeError(f"Migration {module_info.name} is missing 'revision'")
        modules.append(
            MigrationModule(revision=revision, down_revision=getattr(module, "down_revision", None), module=module)
        )

    modules.sort(key=lambda item: item.revision)

    # The chain must be linear.
    previous_revision: Optional[str] = None
    for migration in modules:
        if migration.down_revision != previous_revision:
            raise RuntimeError(
                "Migrations are out of order: "
                f"{migration.revision} declares down_revision={migration.down_revision!r}, "
                f"expected {previous_revision!r}."
            )
        previous_revision = migration.revision

    return modules


def _ensure_version_storage(conn: Connection) -> None:
    conn.execute(
        text(f"CREATE TABLE IF NOT EXISTS {VERSION_TABLE} ({VERSION_COLUMN} VARCHAR(64) PRIMARY KEY)")
    )


def current_revision(conn: Connection) -> Optional[str]:
    _ensure_version_storage(conn)
    row = conn.execute(text(f"SELECT {VERSION_COLUMN} FROM {VERSION_TABLE} LIMIT 1")).first()
    return row[0] if row else None


def _set_current_revision(conn: Connection, revision: Optional[str]) -> None:
    conn.execute(text(f"DELETE FROM {VERSION_TABLE}"))
    if revision is not None:
        conn.execute(
            text(f"INSERT INTO {VERSION_TABLE} ({VERSION_COLUMN}) VALUES (:revision)"),
            {"revision": revision},
        )


def _pending(migrations: Sequence[MigrationModule], current: Optional[str]) -> Iterable[MigrationModule]:
    if current is None:
        return list(migrations)
    try:
        start_index = next(i for i, item in enumerate(migrations) if item.revision == current)
    except StopIteration as exc:
        raise RuntimeError(f"Database is at unknown migration revision {current!r}.") from exc
    return migrations[start_index + 1 :]


def apply_pending(conn: Connection) -> List[str]:
    """Apply every migration newer than the stored revision; return the applied ids."""
    applied: List[str] = []
    current = current_revision(conn)
    for migration in _pending(discover_migrations(), current):
        upgrade = getattr(migration.module, "upgrade", None)
        if upgrade is None:
            raise RuntimeError(f"Migration {migration.revision} is missing upgrade()")
        logger.info("migrations.apply", extra={"revision": migration.revision})
        upgrade(conn)
        _set_current_revision(conn, migration.revision)
        applied.append(migration.revision)
    return applied


def upgrade_to_head(engine_or_url: Engine | str) -> List[str]:
    """Upgrade the database behind a synchronous engine or URL."""
    if isinstance(engine_or_url, Engine):
        engine = engine_or_url
        should_dispose = False
    else:
        engine = create_engine(engine_or_url, future=True)
        should_dispose = True

    try:
        with engine.begin() as conn:
            return apply_pending(conn)
    finally:
        if should_dispose:
            engine.dispose()


__all__ = ["MigrationModule", "apply_pending", "current_revision", "discover_migrations", "upgrade_to_head"]
