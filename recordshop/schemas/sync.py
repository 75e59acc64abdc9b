"""
Schemas for the inventory reconciliation pipeline.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from recordshop.core.enums import RecordStatus, SyncMode
from recordshop.schemas.base import BaseSchema


# Fields compared between the mirror and the remote feed to decide whether a record needs an update
TRACKED_FIELDS = (
    "price",
    "condition",
    "sleeve_condition",
    "notes",
    "location",
    "status",
    "cover_image",
    "weight",
)


class RecordPayload(BaseModel):
    """Normalized remote listing, ready to be written onto a Record."""
    discogs_listing_id: int
    discogs_release_id: int
    title: str
    artist: str
    label: Optional[str] = None
    catalog_number: Optional[str] = None
    year: Optional[int] = None
    format: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    styles: List[str] = Field(default_factory=list)
    cover_image: Optional[str] = None
    price: float
    condition: Optional[str] = None
    sleeve_condition: Optional[str] = None
    quantity: int = 1
    status: RecordStatus = RecordStatus.FOR_SALE
    notes: Optional[str] = None
    location: Optional[str] = None
    weight: Optional[int] = None

    def record_fields(self) -> dict:
        return self.model_dump()


class ReconciliationReport(BaseSchema):
    mode: SyncMode = SyncMode.DELTA
    created: int = 0
    updated: int = 0
    deleted: int = 0
    mapping_errors: int = 0
    skipped_deletions: int = 0
    skipped_duplicates: int = 0
    update_failures: int = 0
    relinked: int = 0
    ambiguous_matches: int = 0
    total_remote: int = 0
    total_existing: int = 0
    pages_fetched: int = 0
    partial: bool = False
    deletions_deferred: int = 0
    sync_run_id: Optional[int] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def summary(self) -> str:
        text = (
            f"created={self.created} updated={self.updated} deleted={self.deleted} "
            f"mapping_errors={self.mapping_errors} skipped_deletions={self.skipped_deletions} "
            f"skipped_duplicates={self.skipped_duplicates} update_failures={self.update_failures} "
            f"relinked={self.relinked}"
        )
        if self.partial:
            text += f" PARTIAL (pages={self.pages_fetched}, deletions_deferred={self.deletions_deferred})"
        return text
