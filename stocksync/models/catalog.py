"""Catalog models — cached storefront products and variations."""

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)

from ..database import UTCDateTime, utcnow
from .base import Base


class CachedProduct(Base):
    """Local mirror of a storefront product or variation.

    Never the source of truth; rebuilt by product sync, detection lookups and
    write-through after stock updates.
    """

    __tablename__ = "products"
    id = Column(Integer, primary_key=True)
    site_id = Column(
        Integer, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(BigInteger, nullable=False)
    parent_id = Column(BigInteger)
    sku = Column(String(255))
    name = Column(String(500))
    type = Column(String(30))
    status = Column(String(30))
    stock_status = Column(String(30))
    stock_quantity = Column(Integer)
    manage_stock = Column(Boolean, default=False)
    price = Column(Numeric(15, 4))
    date_modified = Column(UTCDateTime)
    synced_at = Column(UTCDateTime, default=utcnow)

    __table_args__ = (
        Index("ix_products_site_product", "site_id", "product_id", unique=True),
        Index("ix_products_site_sku", "site_id", "sku"),
    )

    @property
    def is_variation(self) -> bool:
        return self.type == "variation" or bool(self.parent_id)
