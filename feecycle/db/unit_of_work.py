"""
Unit of work for top-level fee operations.

The session is passed explicitly through every service call; only the outermost operation
enters unit_of_work(), so obligations and ledger entries commit together or not at all.
Inner helpers flush, never commit.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from feecycle.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        yield db
        await db.commit()
    except (IntegrityError, StaleDataError) as exc:
        await db.rollback()
        logger.warning("Unit of work rolled back after conflicting write: %s", exc)
        raise ConcurrentModificationError() from exc
    except BaseException:
        await db.rollback()
        raise
