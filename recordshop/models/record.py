# recordshop/models/record.py
from sqlalchemy import (
    Column, Integer, BigInteger, String, Float, Text, DateTime, JSON, Enum,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from recordshop.database import Base
from recordshop.core.enums import RecordStatus
from recordshop.core.utils import utc_now


class Record(Base):
    """
    One sellable unit mirrored from the Discogs "for sale" inventory.

    ``discogs_listing_id`` is the primary identity against the remote feed and is
    unique among non-null values. ``discogs_release_id`` identifies the pressing and
    may repeat across relisted items.
    """
    __tablename__ = "records"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_records_quantity_non_negative"),
        CheckConstraint("price >= 0", name="ck_records_price_non_negative"),
        Index("ix_records_status_listing", "status", "discogs_listing_id"),
    )

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    owner_id = Column(Integer, nullable=True, index=True)
    discogs_listing_id = Column(BigInteger, unique=True, nullable=True)
    discogs_release_id = Column(BigInteger, nullable=True, index=True)

    title = Column(String, nullable=False)
    artist = Column(String, nullable=False)
    label = Column(String)
    catalog_number = Column(String)
    year = Column(Integer)
    format = Column(String)
    genres = Column(JSON, default=list)
    styles = Column(JSON, default=list)
    cover_image = Column(String)

    price = Column(Float, nullable=False)
    condition = Column(String)
    sleeve_condition = Column(String)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(RecordStatus, name="recordstatus", native_enum=False, length=16),
        nullable=False,
        default=RecordStatus.FOR_SALE,
        index=True,
    )
    notes = Column(Text)
    location = Column(String)
    weight = Column(Integer)  # grams
    last_synced_at = Column(DateTime(timezone=True))

    cart_items = relationship("CartItem", back_populates="record", passive_deletes=True)
    order_items = relationship("OrderItem", back_populates="record", passive_deletes=True)

    def __repr__(self):
        return (
            f"<Record(id={self.id}, listing={self.discogs_listing_id}, "
            f"'{self.artist} - {self.title}', qty={self.quantity}, status={self.status})>"
        )
