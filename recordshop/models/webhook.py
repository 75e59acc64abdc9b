# recordshop/models/webhook.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, Text

from recordshop.database import Base
from recordshop.core.enums import WebhookProcessingStatus
from recordshop.core.utils import utc_now


class WebhookEvent(Base):
    """
    Append-only log of inbound payment events. Audit only; settlement idempotency
    comes from the unique ``orders.checkout_id``.
    """
    __tablename__ = "webhook_events"

    id = Column(Integer, primary_key=True)
    source = Column(String, nullable=False, default="stripe")
    event_id = Column(String, index=True)        # provider event id (evt_...)
    event_type = Column(String, nullable=False)
    checkout_id = Column(String, index=True)
    payload = Column(JSON)
    processing_status = Column(String, nullable=False, default=WebhookProcessingStatus.RECEIVED.value)
    error_message = Column(Text)
    received_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WebhookEvent(id={self.id}, type='{self.event_type}', status='{self.processing_status}')>"
