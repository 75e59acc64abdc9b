import pytest

from recordshop.models.order import Order, OrderItem
from recordshop.services.notification_service import EmailNotificationService


def _order(**overrides):
    fields = dict(
        id=7,
        checkout_id="cs_test_7",
        total_amount=4500,
        currency="usd",
        customer_name="Test Buyer",
        customer_email="buyer@example.com",
        shipping_address={"name": "Test Buyer", "line1": "1 Groove St", "city": "Austin", "country": "US"},
    )
    fields.update(overrides)
    order = Order(**fields)
    order.items = [
        OrderItem(record_id=1, title="Tago Mago", artist="Can", price=2500, quantity=1),
        OrderItem(record_id=2, title="Future Days", artist="Can", price=2000, quantity=1),
    ]
    return order


@pytest.fixture
def smtp_settings(settings):
    settings.SMTP_HOST = "smtp.example.com"
    settings.SMTP_USERNAME = "shop@example.com"
    settings.SMTP_PASSWORD = "secret"
    return settings


@pytest.mark.asyncio
async def test_confirmation_skipped_without_smtp(settings, mocker):
    service = EmailNotificationService(settings)
    send = mocker.patch.object(service, "_send_sync")

    assert await service.send_order_confirmation(_order()) is False
    send.assert_not_called()


@pytest.mark.asyncio
async def test_confirmation_skipped_without_customer_email(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    send = mocker.patch.object(service, "_send_sync")

    assert await service.send_order_confirmation(_order(customer_email=None)) is False
    send.assert_not_called()


@pytest.mark.asyncio
async def test_confirmation_message_contents(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    send = mocker.patch.object(service, "_send_sync")

    assert await service.send_order_confirmation(_order()) is True

    message = send.call_args.args[0]
    assert message["Subject"] == "Order confirmation #7"
    assert message["To"] == "buyer@example.com"
    assert "Record Shop" in message["From"]
    body = message.get_content()
    assert "Can - Tago Mago x1 @ 25.00 USD" in body
    assert "Total: 45.00 USD" in body
    assert "1 Groove St" in body


@pytest.mark.asyncio
async def test_smtp_failure_returns_false(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    mocker.patch.object(service, "_send_sync", side_effect=OSError("connection refused"))

    assert await service.send_order_confirmation(_order()) is False
