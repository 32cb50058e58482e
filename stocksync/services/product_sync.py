"""Incremental storefront product mirror — refreshes the products cache.

Variable products are followed by their variations so every purchasable SKU
has a cache row. The products checkpoint follows the parent listing only.
"""

import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import CachedProduct
from ..schemas.storefront import StorefrontProduct
from ..utils import safe_float, safe_int
from . import checkpoint_service
from .incremental_sync import SyncRun, SyncStats, fetch_changed, persist_batch

log = logging.getLogger("stocksync.product_sync")


def product_row(site_id: int, product: StorefrontProduct, parent_id: int | None = None) -> dict:
    return {
        "site_id": site_id,
        "product_id": product.id,
        "parent_id": product.parent_id or parent_id or None,
        "sku": product.sku or None,
        "name": product.name[:500] if product.name else None,
        "type": "variation" if parent_id else product.type,
        "status": product.status or None,
        "stock_status": product.stock_status or None,
        "stock_quantity": safe_int(product.stock_quantity),
        "manage_stock": product.manages_stock,
        "price": safe_float(product.price),
        "date_modified": product.modified_at,
        "synced_at": utcnow(),
    }


async def _fetch_variations(client, parent: StorefrontProduct, per_page: int) -> list[StorefrontProduct]:
    variations = []
    page = 1
    while True:
        items, total_pages = await client.list_page(
            f"products/{parent.id}/variations", page, per_page
        )
        for raw in items:
            try:
                variations.append(StorefrontProduct.model_validate(raw))
            except ValidationError:
                log.warning(f"Skipping malformed variation under product {parent.id}")
        if len(items) < per_page or (total_pages and page >= total_pages):
            break
        page += 1
    return variations


async def run_product_sync(
    db: Session,
    site_id: int,
    client,
    settings,
    task_id: int | None = None,
    mode: str = "incremental",
) -> dict:
    run = SyncRun(db, site_id, "products", mode, task_id)
    stats = SyncStats()
    full = mode == "full"
    checkpoint = checkpoint_service.get_checkpoint(db, site_id, "products")
    since = None if full or checkpoint is None else checkpoint.last_modified
    conflict = ["site_id", "product_id"]
    last_persisted = None

    try:
        raw = await fetch_changed(
            client,
            "products",
            since,
            stats,
            per_page=settings.sync_page_size,
            max_pages=None if full else settings.incremental_max_pages,
            should_stop=run.is_cancelled,
        )
        products = []
        for data in raw:
            try:
                products.append(StorefrontProduct.model_validate(data))
            except ValidationError as e:
                stats.malformed += 1
                stats.failed += 1
                stats.add_error(data.get("id"), f"malformed: {e.errors()[0]['msg']}")

        size = settings.order_sync_batch_size
        for i in range(0, len(products), size):
            if run.is_cancelled():
                break
            batch = products[i:i + size]
            rows = [product_row(site_id, p) for p in batch]
            for p in batch:
                if p.type == "variable":
                    for v in await _fetch_variations(client, p, settings.sync_page_size):
                        rows.append(product_row(site_id, v, parent_id=p.id))
            rows = list({r["product_id"]: r for r in rows}.values())
            persisted, failed = persist_batch(db, CachedProduct, rows, conflict, stats, ref_key="product_id")
            stats.persisted += len(persisted)
            stats.failed += len(failed)
            stored = {r["product_id"] for r in persisted}
            for p in batch:
                if p.id in stored:
                    last_persisted = p
            run.progress(processed=min(i + size, len(products)), total=len(products))
    except Exception as e:
        db.rollback()
        checkpoint_service.mark_failed(db, site_id, "products", str(e), run.duration_ms)
        stats.add_error(None, str(e))
        run.finish("failed", stats)
        log.exception(f"Product sync failed for site {site_id}")
        raise

    if last_persisted is not None:
        checkpoint_service.advance(
            db,
            site_id,
            "products",
            checkpoint_service.Cursor(last_persisted.id, last_persisted.modified_at),
            stats.persisted,
            run.duration_ms,
        )
    status = "completed" if not stats.failed else "partial"
    run.finish(status, stats)
    log.info(
        f"Product sync site={site_id} mode={mode}: fetched={stats.fetched} "
        f"persisted={stats.persisted} failed={stats.failed}"
    )
    return {"type": "products", "mode": mode, "status": status, **stats.as_dict()}
