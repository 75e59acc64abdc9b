from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    page: int = 1
    pages: int = 1
    per_page: int = 100
    items: int = 0


class InventoryPage(BaseModel):
    """One page of raw remote listings plus the remote's pagination block."""
    listings: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)

    @property
    def has_next(self) -> bool:
        return self.pagination.page < self.pagination.pages


class ListingPayload(BaseModel):
    """Body for creating a marketplace listing (used when relisting after a sale)."""
    release_id: int
    condition: Optional[str] = None
    sleeve_condition: Optional[str] = None
    price: float
    status: str = "For Sale"
    comments: Optional[str] = None
    location: Optional[str] = None
    weight: Optional[int] = None
    format_quantity: Optional[int] = None
    quantity: Optional[int] = None


class CatalogGateway(ABC):
    """
    Remote catalog operations consumed by the reconciler and settlement.

    The remote supports no partial-quantity update: a quantity change is a
    delete followed by a create, which returns a new listing id.
    """

    @abstractmethod
    async def list_inventory(self, page: int, per_page: int, status: str) -> InventoryPage:
        """Fetch one page of the seller's inventory filtered by listing status"""
        pass

    @abstractmethod
    async def delete_listing(self, listing_id: int) -> None:
        """Delete a marketplace listing"""
        pass

    @abstractmethod
    async def create_listing(self, payload: ListingPayload) -> Optional[int]:
        """Create a marketplace listing and return its new id"""
        pass
