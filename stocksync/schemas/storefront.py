"""
schemas/storefront.py — Typed records for storefront REST payloads

Products, variations and orders are validated once here. Numeric money and
quantity fields stay raw (`Any`) because they are clamped on the way into
the database, not rejected.

Called by: connectors/storefront.py, services/stock_updater.py,
           services/product_sync.py, services/order_sync.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def parse_gmt(value) -> datetime | None:
    """Parse a storefront *_gmt timestamp (no offset, always UTC)."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


class StorefrontProduct(BaseModel):
    """A product or variation as returned by the products endpoints."""

    model_config = ConfigDict(extra="ignore")

    id: int
    parent_id: int = 0
    sku: str = ""
    name: str = ""
    type: str = "simple"
    status: str = ""
    stock_status: str = ""
    stock_quantity: Any = None
    manage_stock: Any = False
    price: Any = None
    date_modified_gmt: Any = None

    @field_validator("sku", "name", "type", "status", "stock_status", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("parent_id", mode="before")
    @classmethod
    def _parent_default(cls, v):
        return v or 0

    @property
    def is_variation(self) -> bool:
        return self.type == "variation" and bool(self.parent_id)

    @property
    def manages_stock(self) -> bool:
        # Variations report "parent" when stock is managed on the parent product
        return self.manage_stock is True

    @property
    def modified_at(self) -> datetime | None:
        return parse_gmt(self.date_modified_gmt)


class MetaEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = ""
    value: Any = None


class LineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    product_id: int | None = None
    variation_id: int | None = None
    sku: str | None = None
    name: str | None = None
    quantity: Any = None
    price: Any = None
    subtotal: Any = None
    total: Any = None


class StorefrontOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    number: str | None = None
    status: str = ""
    currency: str | None = None
    total: Any = None
    total_tax: Any = None
    shipping_total: Any = None
    discount_total: Any = None
    customer_id: int | None = None
    customer_note: str | None = None
    payment_method: str | None = None
    billing: dict = {}
    date_created_gmt: Any = None
    date_modified_gmt: Any = None
    date_paid_gmt: Any = None
    date_completed_gmt: Any = None
    meta_data: list[MetaEntry] = []
    line_items: list[LineItem] = []

    @field_validator("number", mode="before")
    @classmethod
    def _number_to_str(cls, v):
        return None if v is None else str(v)

    @property
    def modified_at(self) -> datetime | None:
        return parse_gmt(self.date_modified_gmt)

    def meta(self, key: str):
        for entry in self.meta_data:
            if entry.key == key:
                return entry.value
        return None
