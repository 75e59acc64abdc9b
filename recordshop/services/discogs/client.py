import json
import logging
import httpx
from typing import Dict, Optional

from recordshop.core.config import Settings, get_settings
from recordshop.core.exceptions import ConfigurationError, DiscogsAPIError, DiscogsRateLimitError
from recordshop.integrations.base import CatalogGateway, InventoryPage, ListingPayload

logger = logging.getLogger(__name__)


class DiscogsClient(CatalogGateway):
    """
    Asynchronous client for the Discogs marketplace API.

    Authenticates with a personal access token and covers the three operations the
    inventory mirror needs: reading the seller's inventory page by page, deleting a
    listing and creating a listing. Pagination pacing is the caller's job; this
    client issues exactly one HTTP request per call.

    Documentation: https://www.discogs.com/developers
    """

    BASE_URL = "https://api.discogs.com"

    def __init__(
        self,
        username: str,
        token: str,
        user_agent: str = "RecordShopInventorySync/1.0",
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the Discogs client

        Args:
            username: Seller account whose inventory is mirrored
            token: Discogs personal access token
            user_agent: User-Agent string (Discogs rejects requests without one)
            base_url: Override for the API root
            timeout: Per-request timeout in seconds
        """
        if not username or not token:
            raise ConfigurationError("Discogs username and token are required")
        self.username = username
        self.token = token
        self.user_agent = user_agent
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DiscogsClient":
        settings = settings or get_settings()
        return cls(
            username=settings.DISCOGS_USERNAME,
            token=settings.DISCOGS_TOKEN,
            user_agent=settings.DISCOGS_USER_AGENT,
            base_url=settings.DISCOGS_BASE_URL,
            timeout=settings.DISCOGS_REQUEST_TIMEOUT,
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        return {
            "Authorization": f"Discogs token={self.token}",
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/vnd.discogs.v2.discogs+json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict:
        """
        Make a request to the Discogs API

        Args:
            method: HTTP method (GET, POST, DELETE)
            endpoint: API endpoint (without base URL)
            data: Request payload for POST requests
            params: Query parameters

        Returns:
            Dict: Response data (empty for 204 responses)

        Raises:
            DiscogsRateLimitError: On HTTP 429
            DiscogsAPIError: On any other failed request
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"Discogs timeout on {method} {endpoint}: {str(e)}")
            raise DiscogsAPIError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Discogs network error on {method} {endpoint}: {str(e)}")
            raise DiscogsAPIError(f"Network error: {str(e)}")

        if response.status_code == 429:
            logger.warning(f"Discogs rate limit hit on {method} {endpoint}")
            raise DiscogsRateLimitError("Discogs rate limit exceeded", status_code=429)

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Discogs API error {response.status_code}: {response.text[:500]}")
            raise DiscogsAPIError(
                f"Request failed ({response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}

        return response.json()

    # Inventory operations

    async def list_inventory(self, page: int, per_page: int = 100, status: str = "For Sale") -> InventoryPage:
        """
        Fetch one page of the seller's inventory

        Args:
            page: 1-based page number
            per_page: Page size (Discogs caps this at 100)
            status: Listing status filter, e.g. "For Sale"

        Returns:
            InventoryPage: Raw listings plus pagination

        Raises:
            DiscogsAPIError: If the API request fails
        """
        params = {
            "status": status,
            "page": page,
            "per_page": per_page,
            "sort": "listed",
            "sort_order": "asc",
        }
        response = await self._make_request("GET", f"/users/{self.username}/inventory", params=params)
        return InventoryPage.model_validate({
            "listings": response.get("listings") or [],
            "pagination": response.get("pagination") or {"page": page, "pages": page, "per_page": per_page},
        })

    async def delete_listing(self, listing_id: int) -> None:
        """
        Delete a marketplace listing

        Raises:
            DiscogsAPIError: If the API request fails
        """
        await self._make_request("DELETE", f"/marketplace/listings/{listing_id}")
        logger.info(f"Deleted Discogs listing {listing_id}")

    async def create_listing(self, payload: ListingPayload) -> Optional[int]:
        """
        Create a marketplace listing

        Args:
            payload: Listing body; ``release_id``, ``condition`` and ``price`` are required by Discogs

        Returns:
            The new listing id, or None when the response did not carry one

        Raises:
            DiscogsAPIError: If the API request fails
        """
        response = await self._make_request(
            "POST", "/marketplace/listings", data=payload.model_dump(exclude_none=True)
        )
        listing_id = response.get("listing_id")
        logger.info(f"Created Discogs listing {listing_id} for release {payload.release_id}")
        return int(listing_id) if listing_id is not None else None
