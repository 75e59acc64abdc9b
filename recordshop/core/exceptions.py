from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    http_status = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(BaseServiceError):
    """Raised for bad input shape or range. Never retried."""
    http_status = 400


class PermissionDeniedError(BaseServiceError):
    """Raised when a user touches a cart item that is not theirs."""
    http_status = 403


class NotFoundError(BaseServiceError):
    """Raised when a cart item or record does not exist."""
    http_status = 404


class ConflictError(BaseServiceError):
    """Base exception for stock and availability conflicts."""
    http_status = 409


class InsufficientStockError(ConflictError):
    """Raised when the requested quantity exceeds live stock."""
    pass


class RecordUnavailableError(ConflictError):
    """Raised when a record is no longer for sale."""
    pass


class ReconciliationInProgressError(ConflictError):
    """Raised when another reconciliation run holds the sync lock."""
    pass


class ExternalGatewayError(BaseServiceError):
    """Base exception for remote service failures (rate limits, network)."""
    http_status = 502


class DiscogsAPIError(ExternalGatewayError):
    """Raised when Discogs API calls fail."""

    def __init__(self, message: str = "", status_code: Optional[int] = None, **context):
        super().__init__(message, **context)
        self.status_code = status_code


class DiscogsRateLimitError(DiscogsAPIError):
    """Raised when Discogs answers 429."""
    pass


class InventoryFetchError(ExternalGatewayError):
    """Raised when the first inventory page cannot be fetched; aborts the run."""
    pass


class PaymentProviderError(ExternalGatewayError):
    """Raised when Stripe calls fail."""
    pass


class CriticalInvariantError(BaseServiceError):
    """
    A consistency violation that must abort the enclosing transaction and be
    investigated by hand: missing record linkage on a paid line item, stock
    violated after payment, or a relist failure after the old listing was deleted.
    """
    http_status = 500


class SettlementTimeoutError(CriticalInvariantError):
    """Raised when the settlement transaction exceeds its time budget."""
    pass


class ConfigurationError(BaseServiceError):
    """Raised when required credentials are missing."""
    http_status = 500


class IdempotentNoop(Exception):
    """Duplicate settlement event. Not an error: the prior order stands."""

    def __init__(self, checkout_id: str, order_id: Optional[int] = None):
        super().__init__(f"Order already settled for checkout {checkout_id}")
        self.checkout_id = checkout_id
        self.order_id = order_id
