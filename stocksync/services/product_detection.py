"""Product status detection — cache first, live lookup on miss, backfill the cache.

Also used by a reconciliation run to revalidate stale cache rows before any
decision is taken on them.
"""

import logging
from dataclasses import asdict, dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .product_cache import cache_product, cached_products

log = logging.getLogger("stocksync.detection")


@dataclass
class ProductStatus:
    sku: str
    found: bool
    source: str | None = None
    product_id: int | None = None
    parent_id: int | None = None
    name: str | None = None
    type: str | None = None
    stock_status: str | None = None
    stock_quantity: int | None = None
    manage_stock: bool | None = None
    error: str | None = None

    @classmethod
    def from_cache(cls, row):
        return cls(
            sku=row.sku,
            found=True,
            source="cache",
            product_id=row.product_id,
            parent_id=row.parent_id,
            name=row.name,
            type=row.type,
            stock_status=row.stock_status,
            stock_quantity=row.stock_quantity,
            manage_stock=row.manage_stock,
        )


async def lookup_live(db: Session, site_id: int, skus: list[str], client, controller) -> dict[str, ProductStatus]:
    """Look SKUs up on the storefront and write every hit into the cache."""
    outcomes = await controller.run(skus, client.find_by_sku)
    statuses: dict[str, ProductStatus] = {}
    for outcome in outcomes:
        sku = outcome.item
        if not outcome.ok:
            statuses[sku] = ProductStatus(sku, False, "api", error=str(outcome.error))
            continue
        product = outcome.value
        if product is None:
            statuses[sku] = ProductStatus(sku, False, "api")
            continue
        try:
            row = cache_product(db, site_id, product)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            log.warning(f"Cache backfill failed for {sku}: {e}")
            statuses[sku] = ProductStatus(
                sku, True, "api", product.id, product.parent_id or None, product.name,
                product.type, product.stock_status, None, product.manages_stock,
            )
            continue
        status = ProductStatus.from_cache(row)
        status.sku = sku
        status.source = "api"
        statuses[sku] = status
    return statuses


async def detect(db: Session, site_id: int, skus: list[str], client, controller) -> dict:
    skus = list(dict.fromkeys(s.strip() for s in skus if s and s.strip()))
    cached = cached_products(db, site_id, skus)
    results: dict[str, ProductStatus] = {
        sku: ProductStatus.from_cache(row) for sku, row in cached.items()
    }
    misses = [s for s in skus if s not in cached]
    if misses:
        results.update(await lookup_live(db, site_id, misses, client, controller))

    ordered = [results[s] for s in skus if s in results]
    stats = {
        "total": len(skus),
        "cache_hits": len(cached),
        "api_calls": len(misses),
        "found": sum(1 for r in ordered if r.found),
        "not_found": sum(1 for r in ordered if not r.found and not r.error),
        "errors": sum(1 for r in ordered if r.error),
    }
    log.info(f"Detection site={site_id}: {stats}")
    return {"results": [asdict(r) for r in ordered], "stats": stats}


async def refresh_skus(db: Session, site_id: int, skus: list[str], client, controller) -> dict[str, str]:
    """Revalidate SKUs live. Returns sku -> stock_status for every SKU found."""
    if not skus:
        return {}
    statuses = await lookup_live(db, site_id, skus, client, controller)
    return {s: st.stock_status for s, st in statuses.items() if st.found and st.stock_status}
