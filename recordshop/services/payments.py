"""
Stripe integration: checkout session creation, webhook verification and
translation of a completed checkout session into a PaymentConfirmedEvent.

The Stripe SDK is synchronous, so calls run in a worker thread.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import stripe

from recordshop.core.config import Settings, get_settings
from recordshop.core.exceptions import ConfigurationError, PaymentProviderError, ValidationError
from recordshop.schemas.payment import CheckoutSessionResponse, PaidLineItem, PaymentConfirmedEvent

logger = logging.getLogger(__name__)

RECORD_ID_METADATA_KEY = "db_record_id"


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a StripeObject or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    try:
        value = obj[key]
    except (KeyError, TypeError, AttributeError):
        value = getattr(obj, key, default)
    return default if value is None else value


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class StripePaymentProcessor:
    """Thin wrapper around an injected ``stripe.StripeClient``."""

    def __init__(self, client: "stripe.StripeClient", webhook_secret: str, settings: Optional[Settings] = None):
        self.client = client
        self.webhook_secret = webhook_secret
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "StripePaymentProcessor":
        settings = settings or get_settings()
        if not settings.STRIPE_SECRET_KEY:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
        return cls(
            client=stripe.StripeClient(settings.STRIPE_SECRET_KEY),
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            settings=settings,
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def construct_event(self, payload: bytes, signature: Optional[str]):
        """
        Verify the Stripe-Signature header and parse the event.

        Raises:
            ConfigurationError: no webhook secret configured
            ValidationError: missing or invalid signature, or unparseable payload
        """
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            return self.client.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            raise ValidationError("Webhook signature verification failed")
        except ValueError as e:
            logger.warning(f"Invalid Stripe webhook payload: {e}")
            raise ValidationError("Invalid webhook payload")

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    async def create_checkout_session(
        self,
        line_items: List[Dict[str, Any]],
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
    ) -> CheckoutSessionResponse:
        """
        Create a Checkout session in payment mode.

        Raises:
            PaymentProviderError: Stripe rejected the request
        """
        frontend = self.settings.FRONTEND_URL.rstrip("/")
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "metadata": metadata,
            "success_url": f"{frontend}/order/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{frontend}/cart",
            "shipping_address_collection": {"allowed_countries": ["US", "CA", "GB"]},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = await asyncio.to_thread(self.client.checkout.sessions.create, params=params)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise PaymentProviderError(f"Could not create checkout session: {e}")

        session_id = stripe_field(session, "id")
        logger.info(f"Created Stripe checkout session {session_id}")
        return CheckoutSessionResponse(session_id=session_id, url=stripe_field(session, "url"))

    async def list_line_items(self, session_id: str) -> List[Any]:
        """Line items of a session with each price's product expanded (for its metadata)."""
        try:
            result = await asyncio.to_thread(
                self.client.checkout.sessions.line_items.list,
                session_id,
                params={"expand": ["data.price.product"], "limit": 100},
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to list line items for session {session_id}: {e}")
            raise PaymentProviderError(f"Could not list line items for {session_id}: {e}")
        return list(stripe_field(result, "data", []) or [])

    async def build_payment_event(self, session) -> PaymentConfirmedEvent:
        """Translate a completed checkout session into a PaymentConfirmedEvent."""
        session_id = stripe_field(session, "id")
        line_items = await self.list_line_items(session_id)
        return self.payment_event_from_session(session, line_items)

    @staticmethod
    def payment_event_from_session(session, line_items: List[Any]) -> PaymentConfirmedEvent:
        metadata = stripe_field(session, "metadata", {}) or {}
        customer = stripe_field(session, "customer_details", {}) or {}
        shipping = stripe_field(session, "shipping_details") or stripe_field(
            stripe_field(session, "collected_information", {}), "shipping_details"
        )

        items: List[PaidLineItem] = []
        for line in line_items:
            price = stripe_field(line, "price", {})
            product = stripe_field(price, "product", {})
            product_metadata = stripe_field(product, "metadata", {}) if not isinstance(product, str) else {}
            items.append(PaidLineItem(
                record_id=_to_int(stripe_field(product_metadata, RECORD_ID_METADATA_KEY)),
                quantity=_to_int(stripe_field(line, "quantity")) or 0,
                description=stripe_field(line, "description"),
                unit_amount=_to_int(stripe_field(price, "unit_amount")),
            ))

        shipping_address = None
        if shipping:
            address = stripe_field(shipping, "address", {}) or {}
            shipping_address = {
                "name": stripe_field(shipping, "name"),
                "line1": stripe_field(address, "line1"),
                "line2": stripe_field(address, "line2"),
                "city": stripe_field(address, "city"),
                "state": stripe_field(address, "state"),
                "postal_code": stripe_field(address, "postal_code"),
                "country": stripe_field(address, "country"),
            }

        payment_intent = stripe_field(session, "payment_intent")
        if payment_intent is not None and not isinstance(payment_intent, str):
            payment_intent = stripe_field(payment_intent, "id")

        return PaymentConfirmedEvent(
            checkout_id=stripe_field(session, "id"),
            payment_intent_id=payment_intent,
            user_id=_to_int(stripe_field(metadata, "user_id")),
            cart_id=_to_int(stripe_field(metadata, "cart_id")),
            customer_email=stripe_field(customer, "email") or stripe_field(session, "customer_email"),
            customer_name=stripe_field(customer, "name"),
            amount_total=_to_int(stripe_field(session, "amount_total")) or 0,
            currency=stripe_field(session, "currency") or "usd",
            shipping_address=shipping_address,
            line_items=items,
        )
