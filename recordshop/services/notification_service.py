"""Email notification helpers for settled orders."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, Optional, Sequence

from recordshop.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _format_amount(minor_units: int, currency: str) -> str:
    return f"{minor_units / 100:,.2f} {currency.upper()}"


class EmailNotificationService:
    """Lightweight SMTP helper for order confirmations."""

    def __init__(self, settings: Settings):
        self._settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send_order_confirmation(self, order) -> bool:
        """Send the buyer a confirmation for a settled order.

        Args:
            order: Order model with its ``items`` loaded.

        Returns:
            True when the message was handed to the SMTP server.
        """
        if not self._ready():
            logger.warning("SMTP configuration incomplete; confirmation skipped for order %s", order.id)
            return False

        if not order.customer_email:
            logger.warning("Order %s has no customer email; confirmation skipped", order.id)
            return False

        currency = order.currency or "usd"
        lines: List[str] = [
            f"Hi {order.customer_name or 'there'},",
            "",
            f"Thanks for your order #{order.id}. Here is what you bought:",
            "",
        ]
        for item in order.items:
            lines.append(
                f"- {item.artist} - {item.title} x{item.quantity} @ {_format_amount(item.price, currency)}"
            )
        lines.extend([
            "",
            f"Total: {_format_amount(order.total_amount or 0, currency)}",
        ])

        address = order.shipping_address or {}
        if address:
            lines.extend(["", "Shipping to:"])
            lines.extend(
                str(address[key]) for key in ("name", "line1", "line2", "city", "state", "postal_code", "country")
                if address.get(key)
            )

        message = self._build_message(
            subject=f"Order confirmation #{order.id}",
            to_addresses=[order.customer_email],
            body_text="\n".join(lines),
        )
        return await self._dispatch(message)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _ready(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)

    def _build_message(
        self,
        subject: str,
        to_addresses: Sequence[str],
        body_text: str,
        body_html: Optional[str] = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(sorted(set(to_addresses)))
        message.set_content(body_text)
        if body_html:
            message.add_alternative(body_html, subtype="html")
        return message

    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Record Shop"
        return formataddr((from_name, from_email))

    async def _dispatch(self, message: EmailMessage) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, message)
            logger.info("Order confirmation sent to %s", message["To"])
            return True
        except Exception as exc:  # pragma: no cover - logged for observability
            logger.error("Failed to send order confirmation: %s", exc, exc_info=True)
            return False

    def _send_sync(self, message: EmailMessage) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)
        timeout = settings.SMTP_TIMEOUT

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()


def get_email_notification_service() -> EmailNotificationService:
    """Factory for dependency injection."""

    settings = get_settings()
    return EmailNotificationService(settings)
