from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from recordshop.core.config import get_settings
from recordshop.database import async_session
from recordshop.integrations.base import CatalogGateway
from recordshop.services.cart_service import CartService
from recordshop.services.checkout_service import CheckoutService
from recordshop.services.discogs.client import DiscogsClient
from recordshop.services.notification_service import get_email_notification_service
from recordshop.services.payments import StripePaymentProcessor
from recordshop.services.settlement import OrderSettlement
from recordshop.services.webhook_processor import WebhookProcessor


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_catalog_gateway() -> CatalogGateway:
    return DiscogsClient.from_settings(get_settings())


def get_payment_processor() -> StripePaymentProcessor:
    return StripePaymentProcessor.from_settings(get_settings())


def get_cart_service(db: AsyncSession = Depends(get_db)) -> CartService:
    return CartService(db)


def get_checkout_service(
    db: AsyncSession = Depends(get_db),
    payments: StripePaymentProcessor = Depends(get_payment_processor),
) -> CheckoutService:
    return CheckoutService(db, payments)


def get_webhook_processor(
    db: AsyncSession = Depends(get_db),
    payments: StripePaymentProcessor = Depends(get_payment_processor),
    gateway: CatalogGateway = Depends(get_catalog_gateway),
) -> WebhookProcessor:
    settings = get_settings()
    notifier = get_email_notification_service()

    def settlement_factory(session: AsyncSession) -> OrderSettlement:
        return OrderSettlement(session, gateway, settings=settings, notifier=notifier)

    return WebhookProcessor(db, payments, settlement_factory)
