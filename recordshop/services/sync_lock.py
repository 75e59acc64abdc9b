"""
Single-flight guard for reconciliation runs.

An in-process asyncio lock stops the scheduler and the admin route from
overlapping inside one worker; on PostgreSQL a session-level advisory lock
extends that to the CLI and to other workers.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from recordshop.core.exceptions import ReconciliationInProgressError

logger = logging.getLogger(__name__)

# Arbitrary application-wide key for pg_try_advisory_lock
RECONCILIATION_LOCK_KEY = 4_417_202_501

_process_lock = asyncio.Lock()


def is_reconciliation_running() -> bool:
    return _process_lock.locked()


@asynccontextmanager
async def reconciliation_lock(engine: Optional[AsyncEngine] = None) -> AsyncIterator[None]:
    """
    Hold the reconciliation lock for the duration of the block.

    Raises:
        ReconciliationInProgressError: another run already holds the lock
    """
    if _process_lock.locked():
        raise ReconciliationInProgressError("A reconciliation run is already in progress")

    async with _process_lock:
        if engine is None or engine.dialect.name != "postgresql":
            yield
            return

        async with engine.connect() as conn:
            acquired = (
                await conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": RECONCILIATION_LOCK_KEY})
            ).scalar()
            if not acquired:
                raise ReconciliationInProgressError(
                    "A reconciliation run is already in progress in another process"
                )
            logger.debug("Acquired reconciliation advisory lock")
            try:
                yield
            finally:
                await conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": RECONCILIATION_LOCK_KEY})
                await conn.commit()
                logger.debug("Released reconciliation advisory lock")
