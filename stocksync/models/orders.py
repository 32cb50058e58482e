"""Order mirror — storefront orders and line items for reporting."""

from sqlalchemy import (
    BigInteger,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ..database import UTCDateTime, utcnow
from .base import Base


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True)
    site_id = Column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    order_id = Column(BigInteger, nullable=False)
    order_number = Column(String(50))
    status = Column(String(30))
    currency = Column(String(10))
    total = Column(Numeric(15, 4))
    subtotal = Column(Numeric(15, 4))
    total_tax = Column(Numeric(15, 4))
    shipping_total = Column(Numeric(15, 4))
    discount_total = Column(Numeric(15, 4))
    customer_id = Column(BigInteger)
    customer_email = Column(String(255))
    billing_country = Column(String(10))
    payment_method = Column(String(100))
    payment_status = Column(String(20))
    date_created = Column(UTCDateTime)
    date_modified = Column(UTCDateTime)
    date_paid = Column(UTCDateTime)
    date_completed = Column(UTCDateTime)
    attribution_source_type = Column(String(50))
    attribution_source = Column(String(255))
    attribution_medium = Column(String(255))
    attribution_campaign = Column(String(255))
    attribution_origin = Column(String(255))
    attribution_device = Column(String(50))
    utm_source = Column(String(255))
    utm_medium = Column(String(255))
    utm_campaign = Column(String(255))
    customer_note = Column(Text)
    synced_at = Column(UTCDateTime, default=utcnow)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_orders_site_order", "site_id", "order_id", unique=True),
        Index("ix_orders_site_modified", "site_id", "date_modified"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    id = Column(Integer, primary_key=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    item_id = Column(BigInteger, nullable=False)
    product_id = Column(BigInteger)
    variation_id = Column(BigInteger)
    sku = Column(String(255))
    name = Column(String(500))
    quantity = Column(Integer)
    price = Column(Numeric(15, 4))
    subtotal = Column(Numeric(15, 4))
    total = Column(Numeric(15, 4))

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        Index("ix_order_items_order_item", "order_id", "item_id", unique=True),
    )
