"""
Create any missing fee-engine tables in the connected database.

Run once per environment (idempotent):
  python -m feecycle.db.schema_check
"""

import asyncio
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

# Register every model on Base.metadata before create_all
from feecycle.core import models  # noqa: F401
from feecycle.db.session import Base, engine


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """Create missing tables in dependency order; returns the names that were created."""
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        await conn.run_sync(Base.metadata.create_all)

    if missing:
        print("Created missing tables: " + ", ".join(missing))
    else:
        print("All fee tables already exist in the database.")
    return missing


async def main() -> None:
    await ensure_tables(engine)


if __name__ == "__main__":
    asyncio.run(main())
