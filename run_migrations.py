#!/usr/bin/env python
"""Script to run database migrations."""

import asyncio

from schedulehub.core.db import Database
from schedulehub.core.logging import configure_logging
from schedulehub.core.settings import get_settings


async def _migrate() -> list[str]:
    database = Database.from_settings(get_settings())
    try:
        return await database.migrate()
    finally:
        await database.dispose()


if __name__ == "__main__":
    configure_logging()
    print("Running database migrations...")
    applied = asyncio.run(_migrate())
    print(f"Applied: {', '.join(applied) if applied else 'nothing, already at head'}")
    print("Migrations completed successfully!")
