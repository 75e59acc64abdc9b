"""
Normalization of raw Discogs inventory listings into record payloads.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from recordshop.core.enums import RecordStatus
from recordshop.schemas.sync import RecordPayload

logger = logging.getLogger(__name__)


class ListingMappingError(ValueError):
    """Raised when a remote listing lacks the fields the mirror requires."""

    def __init__(self, listing_id: Any, reason: str):
        super().__init__(f"Listing {listing_id}: {reason}")
        self.listing_id = listing_id
        self.reason = reason


def extract_cover_image(release: Dict[str, Any]) -> Optional[str]:
    """Primary image first, then the release's cover image, then its thumbnail."""
    images = release.get("images") or []
    primary = next((img for img in images if img.get("type") == "primary"), None)
    if primary:
        url = primary.get("resource_url") or primary.get("uri")
        if url:
            return url
    return release.get("cover_image") or release.get("thumbnail") or None


def _price_value(listing: Dict[str, Any]) -> Optional[float]:
    price = listing.get("price")
    if isinstance(price, dict):
        price = price.get("value")
    if price is None or price == "":
        return None
    return float(price)


def map_listing(listing: Dict[str, Any]) -> RecordPayload:
    """
    Map one Discogs inventory listing onto a RecordPayload.

    Raises:
        ListingMappingError: listing id, release id or price missing or malformed
    """
    listing_id = listing.get("id")
    if not listing_id:
        raise ListingMappingError(listing_id, "missing listing id")

    release = listing.get("release") or {}
    if not release.get("id"):
        raise ListingMappingError(listing_id, "missing release id")

    try:
        price = _price_value(listing)
    except (TypeError, ValueError):
        raise ListingMappingError(listing_id, f"unparseable price {listing.get('price')!r}")
    if price is None:
        raise ListingMappingError(listing_id, "missing price")

    weight = listing.get("weight") or listing.get("estimated_weight")

    try:
        return RecordPayload(
            discogs_listing_id=int(listing_id),
            discogs_release_id=int(release["id"]),
            title=release.get("title") or release.get("description") or "Unknown Title",
            artist=release.get("artist") or "Unknown Artist",
            label=release.get("label") or "Unknown Label",
            catalog_number=release.get("catalog_number"),
            year=release.get("year") or None,
            format=release.get("format"),
            genres=release.get("genres") or [],
            styles=release.get("styles") or [],
            cover_image=extract_cover_image(release),
            price=price,
            condition=listing.get("condition"),
            sleeve_condition=listing.get("sleeve_condition"),
            quantity=1,
            status=RecordStatus.FOR_SALE,
            notes=listing.get("comments"),
            location=listing.get("location"),
            weight=int(weight) if weight else None,
        )
    except (PydanticValidationError, TypeError, ValueError) as e:
        raise ListingMappingError(listing_id, f"invalid field: {e}")
