"""Create the schedule tables directly from the table metadata.

Meant for local development databases; deployed databases are migrated
with ``scripts/migrate.py``. Pass ``--reset`` to drop existing tables first.
"""

import asyncio
import sys

from app.database import engine
from app.models import metadata


async def init_db(reset: bool = False) -> None:
    """Create enum types, tables and indexes, optionally dropping them first."""
    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(metadata.drop_all)
            print("✓ Existing schedule tables dropped")
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Created tables: {', '.join(sorted(metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init_db(reset="--reset" in sys.argv[1:]))
