"""
Catalog reconciliation between the Discogs "for sale" inventory and the local mirror.

Two modes:

- ``delta``: fetch every page, diff against the FOR_SALE mirror and apply deletes,
  creates and updates in one transaction.
- ``initial``: destructive full replace. Every record without order history is
  removed and the feed is inserted afresh; records with order history stay.

Pagination is strictly sequential with a pause between page requests. A first-page
failure aborts the run. In delta mode a later-page failure stops pagination and the
run carries on with what was gathered, but performs no deletions: a listing missing
from an incomplete feed is not evidence that it was removed remotely.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from recordshop.core.config import Settings, get_settings
from recordshop.core.enums import DISCOGS_FOR_SALE, RecordStatus, SyncMode, SyncRunStatus
from recordshop.core.exceptions import ExternalGatewayError, InventoryFetchError
from recordshop.core.utils import utc_now
from recordshop.database import transaction
from recordshop.integrations.base import CatalogGateway
from recordshop.models.cart import CartItem
from recordshop.models.record import Record
from recordshop.models.sync_run import SyncRun
from recordshop.schemas.sync import TRACKED_FIELDS, ReconciliationReport, RecordPayload
from recordshop.services.discogs.mapping import ListingMappingError, map_listing
from recordshop.services.identity_resolver import IdentityResolver
from recordshop.services.referential_guard import ReferentialGuard
from recordshop.services.sync_lock import reconciliation_lock

logger = logging.getLogger(__name__)

DELETE_CHUNK_SIZE = 500


class CatalogReconciler:
    """Brings the local record mirror in line with the seller's Discogs inventory."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: CatalogGateway,
        settings: Optional[Settings] = None,
        page_size: Optional[int] = None,
        page_delay: Optional[float] = None,
        resolver: Optional[IdentityResolver] = None,
        lock_engine=None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.page_size = page_size or self.settings.DISCOGS_PAGE_SIZE
        self.page_delay = self.settings.DISCOGS_PAGE_DELAY_SECONDS if page_delay is None else page_delay
        self.resolver = resolver or IdentityResolver()
        self.guard = ReferentialGuard(db)
        self.lock_engine = lock_engine if lock_engine is not None else getattr(db, "bind", None)

    async def reconcile(self, mode: SyncMode = SyncMode.DELTA, trigger: str = "manual") -> ReconciliationReport:
        """
        Run one reconciliation pass.

        Returns:
            ReconciliationReport: aggregate counts for the run

        Raises:
            ReconciliationInProgressError: another run holds the lock
            InventoryFetchError: the inventory could not be fetched (first page, or any page in initial mode)
        """
        mode = SyncMode(mode)
        async with reconciliation_lock(self.lock_engine):
            report = ReconciliationReport(mode=mode, started_at=utc_now())
            run_id = await self._start_run(mode, trigger)
            report.sync_run_id = run_id
            logger.info(f"=== Starting {mode.value} reconciliation (run {run_id}, trigger={trigger}) ===")

            try:
                listings = await self._fetch_all_listings(report, allow_partial=(mode == SyncMode.DELTA))
                current = self._build_current_map(listings, report)

                async with transaction(self.db):
                    if mode == SyncMode.INITIAL:
                        await self._apply_initial(current, report)
                    else:
                        await self._apply_delta(current, report)
            except Exception as e:
                # The apply transaction rolled back, so nothing was written
                report.created = report.updated = report.deleted = report.relinked = 0
                report.finished_at = utc_now()
                logger.error(f"Reconciliation run {run_id} failed: {e}", exc_info=True)
                await self._finish_run(run_id, report, SyncRunStatus.FAILED, error=str(e))
                raise

            report.finished_at = utc_now()
            status = SyncRunStatus.PARTIAL if report.partial else SyncRunStatus.SUCCESS
            await self._finish_run(run_id, report, status)
            logger.info(f"=== Reconciliation run {run_id} finished: {report.summary()} ===")
            return report

    # ------------------------------------------------------------------
    # Fetching and mapping
    # ------------------------------------------------------------------
    async def _fetch_all_listings(self, report: ReconciliationReport, allow_partial: bool) -> List[Dict[str, Any]]:
        listings: List[Dict[str, Any]] = []
        page = 1

        while True:
            if page > 1 and self.page_delay > 0:
                await asyncio.sleep(self.page_delay)

            try:
                result = await self.gateway.list_inventory(
                    page=page, per_page=self.page_size, status=DISCOGS_FOR_SALE
                )
            except ExternalGatewayError as e:
                if page == 1:
                    raise InventoryFetchError(f"Failed to fetch first inventory page: {e}") from e
                if not allow_partial:
                    raise InventoryFetchError(f"Failed to fetch inventory page {page}: {e}") from e
                logger.error(
                    f"Inventory page {page} failed ({e}); continuing with {len(listings)} listings "
                    f"from {report.pages_fetched} pages, deletions disabled for this run"
                )
                report.partial = True
                break

            report.pages_fetched += 1
            listings.extend(result.listings)
            logger.info(
                f"Fetched inventory page {page}/{result.pagination.pages} ({len(result.listings)} listings)"
            )

            if not result.listings or not result.has_next:
                break
            page += 1

        return listings

    def _build_current_map(self, listings: Sequence[Dict[str, Any]], report: ReconciliationReport) -> Dict[int, RecordPayload]:
        current: Dict[int, RecordPayload] = {}
        for listing in listings:
            try:
                payload = map_listing(listing)
            except ListingMappingError as e:
                report.mapping_errors += 1
                logger.warning(f"Skipping listing: {e}")
                continue
            if payload.discogs_listing_id in current:
                logger.debug(f"Listing {payload.discogs_listing_id} seen twice in feed; keeping first")
                continue
            current[payload.discogs_listing_id] = payload

        report.total_remote = len(current)
        logger.info(f"Mapped {len(current)} listings ({report.mapping_errors} mapping errors)")
        return current

    # ------------------------------------------------------------------
    # Delta mode
    # ------------------------------------------------------------------
    async def _apply_delta(self, current: Dict[int, RecordPayload], report: ReconciliationReport) -> None:
        # Listing ids already held by SOLD/DRAFT records are not recreated or adopted
        held = await self.db.execute(
            select(Record.discogs_listing_id).where(
                Record.status != RecordStatus.FOR_SALE,
                Record.discogs_listing_id.is_not(None),
            )
        )
        held_ids = set(held.scalars().all())
        for listing_id in held_ids & current.keys():
            logger.warning(f"Listing {listing_id} is held by a record that is not for sale; skipping")
            report.skipped_duplicates += 1
            del current[listing_id]

        existing = (
            await self.db.execute(select(Record).where(Record.status == RecordStatus.FOR_SALE))
        ).scalars().all()
        report.total_existing = len(existing)

        resolution = self.resolver.resolve(current, existing, partial_feed=report.partial)
        report.ambiguous_matches = resolution.ambiguous

        # Delete set, filtered through the guard
        to_delete: List[int] = []
        if report.partial:
            report.deletions_deferred = len(resolution.unmatched_local)
            if resolution.unmatched_local:
                logger.warning(
                    f"Partial feed: deferring deletion of {len(resolution.unmatched_local)} unmatched records"
                )
        else:
            for record in resolution.unmatched_local:
                if await self.guard.can_delete(record):
                    to_delete.append(record.id)
                else:
                    report.skipped_deletions += 1

        # Update set
        updates: List[Tuple[Record, Dict[str, Any]]] = []
        for record, payload in resolution.matched:
            changes = self._diff(record, payload)
            if changes:
                updates.append((record, changes))
        for record, payload in resolution.adopted:
            # Local stock is owned by settlement, not by the feed
            changes = {k: v for k, v in payload.record_fields().items() if k != "quantity"}
            updates.append((record, changes))
            report.relinked += 1

        # Apply: deletes, creates, then updates
        report.deleted = await self._delete_records(to_delete)
        report.created = await self._create_records(resolution.unmatched_remote.values())
        await self._apply_updates(updates, report)

    @staticmethod
    def _diff(record: Record, payload: RecordPayload) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        for name in TRACKED_FIELDS:
            new_value = getattr(payload, name)
            old_value = getattr(record, name)
            if name == "price":
                if old_value is None or abs(float(old_value) - float(new_value)) > 0.001:
                    changes[name] = new_value
            elif old_value != new_value:
                changes[name] = new_value
        return changes

    async def _apply_updates(self, updates: List[Tuple[Record, Dict[str, Any]]], report: ReconciliationReport) -> None:
        now = utc_now()
        for record, changes in updates:
            record_id = record.id
            try:
                async with self.db.begin_nested():
                    for name, value in changes.items():
                        setattr(record, name, value)
                    record.last_synced_at = now
                report.updated += 1
                logger.debug(f"Updated record {record_id}: {sorted(changes)}")
            except SQLAlchemyError as e:
                report.update_failures += 1
                logger.error(f"Failed to update record {record_id}: {e}")

    # ------------------------------------------------------------------
    # Initial mode
    # ------------------------------------------------------------------
    async def _apply_initial(self, current: Dict[int, RecordPayload], report: ReconciliationReport) -> None:
        rows = (await self.db.execute(select(Record.id, Record.discogs_listing_id))).all()
        report.total_existing = len(rows)

        retained = await self.guard.retained_record_ids()
        retained_listing_ids = {listing_id for record_id, listing_id in rows if record_id in retained}
        to_delete = [record_id for record_id, _ in rows if record_id not in retained]
        report.skipped_deletions = len(rows) - len(to_delete)
        if report.skipped_deletions:
            logger.info(f"Retaining {report.skipped_deletions} records with order history")

        report.deleted = await self._delete_records(to_delete)

        fresh: List[RecordPayload] = []
        for listing_id, payload in current.items():
            if listing_id in retained_listing_ids:
                report.skipped_duplicates += 1
                continue
            fresh.append(payload)
        report.created = await self._create_records(fresh)

    # ------------------------------------------------------------------
    # Shared writes
    # ------------------------------------------------------------------
    async def _delete_records(self, record_ids: List[int]) -> int:
        if not record_ids:
            return 0
        deleted = 0
        for start in range(0, len(record_ids), DELETE_CHUNK_SIZE):
            chunk = record_ids[start:start + DELETE_CHUNK_SIZE]
            # Lock the rows so a concurrent settlement waits for this transaction
            await self.db.execute(select(Record.id).where(Record.id.in_(chunk)).with_for_update())
            await self.db.execute(delete(CartItem).where(CartItem.record_id.in_(chunk)))
            result = await self.db.execute(delete(Record).where(Record.id.in_(chunk)))
            deleted += result.rowcount or 0
        logger.info(f"Deleted {deleted} records no longer listed")
        return deleted

    async def _create_records(self, payloads) -> int:
        now = utc_now()
        records = [
            Record(
                **payload.record_fields(),
                owner_id=self.settings.STORE_OWNER_ID,
                last_synced_at=now,
            )
            for payload in payloads
        ]
        if not records:
            return 0
        self.db.add_all(records)
        await self.db.flush()
        logger.info(f"Created {len(records)} records")
        return len(records)

    # ------------------------------------------------------------------
    # Run audit
    # ------------------------------------------------------------------
    async def _start_run(self, mode: SyncMode, trigger: str) -> int:
        run = SyncRun(mode=mode.value, trigger=trigger, status=SyncRunStatus.RUNNING.value)
        async with transaction(self.db):
            self.db.add(run)
            await self.db.flush()
            run_id = run.id
        return run_id

    async def _finish_run(
        self,
        run_id: int,
        report: ReconciliationReport,
        status: SyncRunStatus,
        error: Optional[str] = None,
    ) -> None:
        values = dict(
            status=status.value,
            created=report.created,
            updated=report.updated,
            deleted=report.deleted,
            mapping_errors=report.mapping_errors,
            skipped_deletions=report.skipped_deletions,
            skipped_duplicates=report.skipped_duplicates,
            update_failures=report.update_failures,
            relinked=report.relinked,
            pages_fetched=report.pages_fetched,
            partial=report.partial,
            error_message=error[:2000] if error else None,
            finished_at=report.finished_at or utc_now(),
        )
        async with transaction(self.db):
            await self.db.execute(update(SyncRun).where(SyncRun.id == run_id).values(**values))
