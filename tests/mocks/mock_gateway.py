import math
from typing import Any, Dict, List, Optional, Set

from recordshop.core.exceptions import DiscogsAPIError
from recordshop.integrations.base import CatalogGateway, InventoryPage, ListingPayload, Pagination


def make_listing(listing_id: int, release_id: int, price: float = 25.0, **overrides) -> Dict[str, Any]:
    """A raw Discogs inventory listing as returned by /users/{username}/inventory."""
    listing = {
        "id": listing_id,
        "status": "For Sale",
        "condition": "Very Good Plus (VG+)",
        "sleeve_condition": "Very Good (VG)",
        "price": {"value": price, "currency": "USD"},
        "comments": None,
        "location": None,
        "weight": None,
        "release": {
            "id": release_id,
            "title": f"Release {release_id}",
            "artist": "Test Artist",
            "label": "Test Label",
            "catalog_number": f"CAT-{release_id}",
            "year": 1977,
            "format": "LP, Album",
            "thumbnail": f"https://img.example.com/{release_id}.jpg",
        },
    }
    listing.update(overrides)
    return listing


class MockCatalogGateway(CatalogGateway):
    def __init__(self, listings: Optional[List[Dict[str, Any]]] = None):
        self.listings: List[Dict[str, Any]] = list(listings or [])
        self.fail_pages: Set[int] = set()  # pages that raise DiscogsAPIError
        self.fail_delete = False
        self.fail_create = False
        self.create_returns_none = False
        self.next_listing_id = 900_000

        # Track calls for testing
        self.list_calls: List[Dict[str, Any]] = []
        self.delete_calls: List[int] = []
        self.create_calls: List[ListingPayload] = []

    async def list_inventory(self, page: int, per_page: int, status: str) -> InventoryPage:
        self.list_calls.append({"page": page, "per_page": per_page, "status": status})
        if page in self.fail_pages:
            raise DiscogsAPIError(f"Simulated failure on page {page}", status_code=500)

        pages = max(1, math.ceil(len(self.listings) / per_page))
        start = (page - 1) * per_page
        return InventoryPage(
            listings=self.listings[start:start + per_page],
            pagination=Pagination(page=page, pages=pages, per_page=per_page, items=len(self.listings)),
        )

    async def delete_listing(self, listing_id: int) -> None:
        self.delete_calls.append(listing_id)
        if self.fail_delete:
            raise DiscogsAPIError(f"Simulated delete failure for {listing_id}", status_code=500)

    async def create_listing(self, payload: ListingPayload) -> Optional[int]:
        self.create_calls.append(payload)
        if self.fail_create:
            raise DiscogsAPIError("Simulated create failure", status_code=500)
        if self.create_returns_none:
            return None
        self.next_listing_id += 1
        return self.next_listing_id

    def clear_history(self):
        """Clear test history"""
        self.list_calls = []
        self.delete_calls = []
        self.create_calls = []
