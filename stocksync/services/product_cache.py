"""Cached storefront product rows — lookups and write-through for single products.

Bulk refreshes go through product_sync; this module handles the one-at-a-time
writes made after a stock update or a live detection lookup.
"""

from datetime import timedelta

from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import CachedProduct
from ..schemas.storefront import StorefrontProduct
from ..utils import safe_float, safe_int


def cached_products(db: Session, site_id: int, skus: list[str]) -> dict[str, CachedProduct]:
    """Cache rows by SKU. When a SKU has several rows the newest sync wins."""
    if not skus:
        return {}
    found: dict[str, CachedProduct] = {}
    chunk = 500
    for i in range(0, len(skus), chunk):
        rows = (
            db.query(CachedProduct)
            .filter(CachedProduct.site_id == site_id, CachedProduct.sku.in_(skus[i:i + chunk]))
            .all()
        )
        for row in rows:
            prev = found.get(row.sku)
            if prev is None or (row.synced_at or utcnow()) > (prev.synced_at or utcnow()):
                found[row.sku] = row
    return found


def is_stale(row: CachedProduct, max_age_hours: int) -> bool:
    if row.synced_at is None:
        return True
    return utcnow() - row.synced_at > timedelta(hours=max_age_hours)


def cache_product(
    db: Session, site_id: int, product: StorefrontProduct, parent_id: int | None = None
) -> CachedProduct:
    """Insert or update the cache row for one storefront product. Caller commits."""
    row = (
        db.query(CachedProduct)
        .filter(CachedProduct.site_id == site_id, CachedProduct.product_id == product.id)
        .first()
    )
    if row is None:
        row = CachedProduct(site_id=site_id, product_id=product.id)
        db.add(row)
    row.parent_id = product.parent_id or parent_id or None
    row.sku = product.sku or row.sku
    row.name = product.name or row.name
    row.type = product.type or row.type
    row.status = product.status or row.status
    row.stock_status = product.stock_status or row.stock_status
    row.stock_quantity = safe_int(product.stock_quantity)
    row.manage_stock = product.manages_stock
    if product.price not in (None, ""):
        row.price = safe_float(product.price)
    row.date_modified = product.modified_at or row.date_modified
    row.synced_at = utcnow()
    return row
