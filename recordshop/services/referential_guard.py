"""Deletion guard for mirrored records with order history."""
import logging
from typing import Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recordshop.models.order import OrderItem
from recordshop.models.record import Record

logger = logging.getLogger(__name__)


class ReferentialGuard:
    """
    A record referenced by any OrderItem is never physically deleted.

    Every check runs a fresh query on the caller's session, inside whatever
    transaction is open, so a settlement committed moments earlier is seen.
    Nothing is cached between calls.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def can_delete(self, record: Record) -> bool:
        stmt = select(OrderItem.id).where(OrderItem.record_id == record.id).limit(1)
        referenced = (await self.db.execute(stmt)).scalar_one_or_none() is not None
        if referenced:
            logger.info(f"Record {record.id} (listing {record.discogs_listing_id}) has order history; keeping it")
        return not referenced

    async def retained_record_ids(self) -> Set[int]:
        """Ids of every record with order history."""
        result = await self.db.execute(select(OrderItem.record_id).distinct())
        return set(result.scalars().all())
