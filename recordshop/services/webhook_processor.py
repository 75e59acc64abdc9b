"""
Stripe webhook handling: verify, log, dispatch to settlement, record the outcome.
"""
import json
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from recordshop.core.enums import WebhookProcessingStatus
from recordshop.core.utils import utc_now
from recordshop.database import transaction
from recordshop.models.webhook import WebhookEvent
from recordshop.services.payments import StripePaymentProcessor, stripe_field
from recordshop.services.settlement import OrderSettlement

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
SETTLEABLE_PAYMENT_STATUSES = ("paid", "no_payment_required")


class WebhookProcessor:
    def __init__(
        self,
        db: AsyncSession,
        payments: StripePaymentProcessor,
        settlement_factory: Callable[[AsyncSession], OrderSettlement],
    ):
        self.db = db
        self.payments = payments
        self.settlement_factory = settlement_factory

    async def handle_stripe_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Process one signed Stripe event.

        Settlement failures are recorded on the log row and re-raised so the
        endpoint answers non-2xx and Stripe redelivers.

        Raises:
            ValidationError: bad signature or payload
            CriticalInvariantError: settlement aborted
        """
        event = self.payments.construct_event(payload, signature)
        event_type = stripe_field(event, "type", "unknown")
        event_id = stripe_field(event, "id")
        session = stripe_field(stripe_field(event, "data", {}), "object", {})
        checkout_id = stripe_field(session, "id") if event_type.startswith("checkout.session") else None

        log_id = await self._log_event(event_id, event_type, checkout_id, payload)
        logger.info(f"Stripe webhook {event_id} ({event_type}) logged as {log_id}")

        if event_type != CHECKOUT_COMPLETED:
            await self._mark(log_id, WebhookProcessingStatus.IGNORED)
            return {"status": WebhookProcessingStatus.IGNORED.value, "event_type": event_type}

        payment_status = stripe_field(session, "payment_status")
        if payment_status not in SETTLEABLE_PAYMENT_STATUSES:
            logger.info(f"Checkout {checkout_id} completed with payment_status={payment_status}; not settling")
            await self._mark(log_id, WebhookProcessingStatus.IGNORED, error=f"payment_status={payment_status}")
            return {"status": WebhookProcessingStatus.IGNORED.value, "event_type": event_type}

        try:
            payment_event = await self.payments.build_payment_event(session)
            result = await self.settlement_factory(self.db).settle(payment_event)
        except Exception as e:
            logger.error(f"Stripe webhook {event_id} for checkout {checkout_id} failed: {e}")
            await self._mark(log_id, WebhookProcessingStatus.FAILED, error=str(e))
            raise

        status = WebhookProcessingStatus.DUPLICATE if result.duplicate else WebhookProcessingStatus.PROCESSED
        await self._mark(log_id, status)
        return {"status": status.value, "order_id": result.order_id, "checkout_id": checkout_id}

    async def _log_event(self, event_id, event_type: str, checkout_id: Optional[str], payload: bytes) -> int:
        try:
            body = json.loads(payload)
        except (TypeError, ValueError):
            body = {"raw": payload.decode("utf-8", errors="replace") if isinstance(payload, bytes) else str(payload)}

        row = WebhookEvent(
            source="stripe",
            event_id=event_id,
            event_type=event_type,
            checkout_id=checkout_id,
            payload=body,
            processing_status=WebhookProcessingStatus.RECEIVED.value,
        )
        async with transaction(self.db):
            self.db.add(row)
            await self.db.flush()
            row_id = row.id
        return row_id

    async def _mark(self, log_id: int, status: WebhookProcessingStatus, error: Optional[str] = None) -> None:
        async with transaction(self.db):
            await self.db.execute(
                update(WebhookEvent)
                .where(WebhookEvent.id == log_id)
                .values(
                    processing_status=status.value,
                    error_message=error[:2000] if error else None,
                    processed_at=utc_now(),
                )
            )
