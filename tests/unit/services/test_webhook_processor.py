import pytest
import stripe
from sqlalchemy import func, select

from recordshop.core.enums import WebhookProcessingStatus
from recordshop.core.exceptions import CriticalInvariantError, ValidationError
from recordshop.models.order import Order
from recordshop.models.webhook import WebhookEvent
from recordshop.services.payments import StripePaymentProcessor
from recordshop.services.settlement import OrderSettlement
from recordshop.services.webhook_processor import WebhookProcessor

from tests.mocks.stripe_payloads import checkout_session, line_item, sign_payload, stripe_event

WEBHOOK_SECRET = "whsec_test"


@pytest.fixture
def payments(settings):
    return StripePaymentProcessor(stripe.StripeClient("sk_test_123"), WEBHOOK_SECRET, settings=settings)


@pytest.fixture
def processor(db_session, payments, mock_gateway, settings):
    def settlement_factory(session):
        return OrderSettlement(session, mock_gateway, settings=settings)

    return WebhookProcessor(db_session, payments, settlement_factory)


def _signed(event_type, obj, event_id="evt_test_1"):
    payload = stripe_event(event_type, obj, event_id=event_id)
    return payload, sign_payload(payload, WEBHOOK_SECRET)


async def _log_rows(db_session):
    stmt = select(WebhookEvent).order_by(WebhookEvent.id).execution_options(populate_existing=True)
    return (await db_session.execute(stmt)).scalars().all()


async def _order_count(db_session):
    return (await db_session.execute(select(func.count(Order.id)))).scalar()


@pytest.mark.asyncio
async def test_completed_checkout_settles_order(db_session, processor, payments, make_record, mocker):
    record = await make_record(quantity=1)
    mocker.patch.object(payments, "list_line_items", mocker.AsyncMock(return_value=[line_item(record.id)]))
    payload, signature = _signed("checkout.session.completed", checkout_session())

    result = await processor.handle_stripe_webhook(payload, signature)

    assert result["status"] == WebhookProcessingStatus.PROCESSED.value
    assert result["checkout_id"] == "cs_test_1"
    assert result["order_id"] is not None
    assert await _order_count(db_session) == 1

    rows = await _log_rows(db_session)
    assert len(rows) == 1
    assert rows[0].event_id == "evt_test_1"
    assert rows[0].checkout_id == "cs_test_1"
    assert rows[0].processing_status == WebhookProcessingStatus.PROCESSED.value
    assert rows[0].processed_at is not None


@pytest.mark.asyncio
async def test_redelivered_event_is_duplicate(db_session, processor, payments, make_record, mocker):
    record = await make_record(quantity=2)
    mocker.patch.object(payments, "list_line_items", mocker.AsyncMock(return_value=[line_item(record.id)]))
    payload, signature = _signed("checkout.session.completed", checkout_session())

    first = await processor.handle_stripe_webhook(payload, signature)
    second = await processor.handle_stripe_webhook(payload, signature)

    assert second["status"] == WebhookProcessingStatus.DUPLICATE.value
    assert second["order_id"] == first["order_id"]
    assert await _order_count(db_session) == 1


@pytest.mark.asyncio
async def test_other_event_types_are_ignored(db_session, processor):
    payload, signature = _signed("payment_intent.created", {"id": "pi_1", "object": "payment_intent"})

    result = await processor.handle_stripe_webhook(payload, signature)

    assert result["status"] == WebhookProcessingStatus.IGNORED.value
    rows = await _log_rows(db_session)
    assert rows[0].processing_status == WebhookProcessingStatus.IGNORED.value
    assert rows[0].checkout_id is None


@pytest.mark.asyncio
async def test_unpaid_checkout_is_not_settled(db_session, processor, payments, mocker):
    list_items = mocker.patch.object(payments, "list_line_items", mocker.AsyncMock(return_value=[]))
    payload, signature = _signed("checkout.session.completed", checkout_session(payment_status="unpaid"))

    result = await processor.handle_stripe_webhook(payload, signature)

    assert result["status"] == WebhookProcessingStatus.IGNORED.value
    list_items.assert_not_called()
    assert await _order_count(db_session) == 0


@pytest.mark.asyncio
async def test_settlement_failure_is_recorded_and_raised(db_session, processor, payments, mocker):
    mocker.patch.object(payments, "list_line_items", mocker.AsyncMock(return_value=[line_item(None)]))
    payload, signature = _signed("checkout.session.completed", checkout_session())

    with pytest.raises(CriticalInvariantError):
        await processor.handle_stripe_webhook(payload, signature)

    rows = await _log_rows(db_session)
    assert rows[0].processing_status == WebhookProcessingStatus.FAILED.value
    assert "record id" in rows[0].error_message
    assert await _order_count(db_session) == 0


@pytest.mark.asyncio
async def test_bad_signature_is_rejected_before_logging(db_session, processor):
    payload = stripe_event("checkout.session.completed", checkout_session())

    with pytest.raises(ValidationError):
        await processor.handle_stripe_webhook(payload, sign_payload(payload, "whsec_wrong"))

    assert await _log_rows(db_session) == []
