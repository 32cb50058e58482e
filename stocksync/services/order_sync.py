"""
order_sync.py — Incremental storefront order mirror

Business Rules:
- Resume from the orders checkpoint; full mode ignores it and has no page cap
- Money fields clamp to NUMERIC(15,4), quantities to 999999
- payment_status: paid when date_paid is set or status is completed/processing,
  otherwise pending/failed/refunded/cancelled from status, else unknown
- Attribution comes from _wc_order_attribution_* meta (utm_* fallbacks);
  origin is built from source type + source when not given
- Line items are upserted after their order row exists
- The checkpoint moves to the last persisted order in fetch order, and only
  when at least one order was persisted

Called by: services/batch_processor.py
Depends on: services/incremental_sync.py, services/checkpoint_service.py
"""

import logging
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..database import utcnow
from ..models import Order, OrderItem
from ..schemas.storefront import StorefrontOrder, parse_gmt
from ..utils import safe_float, safe_int
from . import checkpoint_service
from .incremental_sync import SyncRun, SyncStats, fetch_changed, persist_batch

log = logging.getLogger("stocksync.order_sync")

MAX_QUANTITY = 999999
_PAID_STATUSES = ("completed", "processing")
_STATUS_TO_PAYMENT = {
    "pending": "pending",
    "failed": "failed",
    "refunded": "refunded",
    "cancelled": "cancelled",
}

_ATTRIBUTION_KEYS = {
    "_wc_order_attribution_source_type": "source_type",
    "_wc_order_attribution_source": "source",
    "_wc_order_attribution_medium": "medium",
    "_wc_order_attribution_campaign": "campaign",
    "_wc_order_attribution_device_type": "device",
    "_wc_order_attribution_utm_source": "utm_source",
    "utm_source": "utm_source",
    "_wc_order_attribution_utm_medium": "utm_medium",
    "utm_medium": "utm_medium",
    "_wc_order_attribution_utm_campaign": "utm_campaign",
    "utm_campaign": "utm_campaign",
    "origin": "origin",
    "_origin": "origin",
}


def payment_status(order: StorefrontOrder) -> str:
    if order.date_paid_gmt or order.status in _PAID_STATUSES:
        return "paid"
    return _STATUS_TO_PAYMENT.get(order.status, "unknown")


def extract_attribution(order: StorefrontOrder) -> dict:
    attr: dict[str, str] = {}
    for entry in order.meta_data:
        name = _ATTRIBUTION_KEYS.get(entry.key)
        if name and entry.value not in (None, ""):
            attr[name] = str(entry.value)[:255]
    if not attr.get("origin") and attr.get("source"):
        source_type = attr.get("source_type")
        if source_type == "organic":
            attr["origin"] = f"Organic: {attr['source']}"
        elif source_type == "paid":
            attr["origin"] = f"Paid: {attr['source']}"
        elif source_type:
            attr["origin"] = f"{source_type}: {attr['source']}"
    return attr


def order_row(site_id: int, order: StorefrontOrder) -> dict:
    attr = extract_attribution(order)
    subtotal = sum(safe_float(i.subtotal) or 0 for i in order.line_items)
    return {
        "site_id": site_id,
        "order_id": order.id,
        "order_number": order.number,
        "status": order.status,
        "currency": order.currency,
        "total": safe_float(order.total),
        "subtotal": safe_float(subtotal),
        "total_tax": safe_float(order.total_tax),
        "shipping_total": safe_float(order.shipping_total),
        "discount_total": safe_float(order.discount_total),
        "customer_id": order.customer_id,
        "customer_email": (order.billing or {}).get("email") or None,
        "billing_country": (order.billing or {}).get("country") or None,
        "payment_method": order.payment_method,
        "payment_status": payment_status(order),
        "date_created": parse_gmt(order.date_created_gmt),
        "date_modified": order.modified_at,
        "date_paid": parse_gmt(order.date_paid_gmt),
        "date_completed": parse_gmt(order.date_completed_gmt),
        "attribution_source_type": attr.get("source_type"),
        "attribution_source": attr.get("source"),
        "attribution_medium": attr.get("medium"),
        "attribution_campaign": attr.get("campaign"),
        "attribution_origin": attr.get("origin"),
        "attribution_device": attr.get("device"),
        "utm_source": attr.get("utm_source"),
        "utm_medium": attr.get("utm_medium"),
        "utm_campaign": attr.get("utm_campaign"),
        "customer_note": order.customer_note,
        "synced_at": utcnow(),
    }


def item_rows(order_pk: int, order: StorefrontOrder) -> list[dict]:
    return [
        {
            "order_id": order_pk,
            "item_id": item.id,
            "product_id": item.product_id,
            "variation_id": item.variation_id or None,
            "sku": item.sku,
            "name": item.name,
            "quantity": safe_int(item.quantity, limit=MAX_QUANTITY),
            "price": safe_float(item.price),
            "subtotal": safe_float(item.subtotal),
            "total": safe_float(item.total),
        }
        for item in order.line_items
    ]


def _parse_orders(raw: list[dict], stats: SyncStats) -> list[StorefrontOrder]:
    orders = []
    for data in raw:
        try:
            orders.append(StorefrontOrder.model_validate(data))
        except ValidationError as e:
            stats.malformed += 1
            stats.failed += 1
            stats.add_error(data.get("id") if isinstance(data, dict) else None, f"malformed: {e.errors()[0]['msg']}")
    return orders


def _persist_items(db: Session, site_id: int, orders: list[StorefrontOrder], stats: SyncStats) -> int:
    ids = [o.id for o in orders]
    pk_by_order = dict(
        db.query(Order.order_id, Order.id)
        .filter(Order.site_id == site_id, Order.order_id.in_(ids))
        .all()
    )
    rows = []
    for order in orders:
        pk = pk_by_order.get(order.id)
        if pk is not None:
            rows.extend(item_rows(pk, order))
    persisted, failed = persist_batch(db, OrderItem, rows, ["order_id", "item_id"], stats, ref_key="item_id")
    if failed:
        log.warning(f"Site {site_id}: {len(failed)} order line items not stored")
    return len(persisted)


def persist_orders(
    db: Session, site_id: int, orders: list[StorefrontOrder], stats: SyncStats, batch_size: int = 50,
    on_batch=None, should_stop=None,
) -> StorefrontOrder | None:
    """Upsert orders batch by batch. Returns the last persisted order in fetch order."""
    last_persisted = None
    for i in range(0, len(orders), batch_size):
        if should_stop is not None and should_stop():
            log.info(f"Site {site_id}: order sync stopped at {i}/{len(orders)}")
            break
        batch = orders[i:i + batch_size]
        persisted, failed = persist_batch(
            db, Order, [order_row(site_id, o) for o in batch], ["site_id", "order_id"], stats, ref_key="order_id"
        )
        stats.persisted += len(persisted)
        stats.failed += len(failed)
        if persisted:
            stored_ids = {r["order_id"] for r in persisted}
            stored = [o for o in batch if o.id in stored_ids]
            _persist_items(db, site_id, stored, stats)
            last_persisted = stored[-1]
        if on_batch is not None:
            on_batch(min(i + batch_size, len(orders)), len(orders))
    return last_persisted


async def run_order_sync(
    db: Session,
    site_id: int,
    client,
    settings,
    task_id: int | None = None,
    mode: str = "incremental",
) -> dict:
    """One checkpointed order sync pass. Raises on fetch/run failure after recording it."""
    run = SyncRun(db, site_id, "orders", mode, task_id)
    stats = SyncStats()
    full = mode == "full"
    checkpoint = checkpoint_service.get_checkpoint(db, site_id, "orders")
    since: datetime | None = None if full or checkpoint is None else checkpoint.last_modified

    try:
        raw = await fetch_changed(
            client,
            "orders",
            since,
            stats,
            per_page=settings.sync_page_size,
            max_pages=None if full else settings.incremental_max_pages,
            should_stop=run.is_cancelled,
        )
        run.progress(phase="persisting", fetched=len(raw), duplicates=stats.duplicates)
        orders = _parse_orders(raw, stats)
        last = persist_orders(
            db,
            site_id,
            orders,
            stats,
            batch_size=settings.order_sync_batch_size,
            on_batch=lambda done, total: run.progress(processed=done, total=total),
            should_stop=run.is_cancelled,
        )
    except Exception as e:
        db.rollback()
        checkpoint_service.mark_failed(db, site_id, "orders", str(e), run.duration_ms)
        stats.add_error(None, str(e))
        run.finish("failed", stats)
        log.exception(f"Order sync failed for site {site_id}")
        raise

    if last is not None:
        checkpoint_service.advance(
            db,
            site_id,
            "orders",
            checkpoint_service.Cursor(last.id, last.modified_at),
            stats.persisted,
            run.duration_ms,
        )
    status = "completed" if not stats.failed else "partial"
    run.finish(status, stats)
    log.info(
        f"Order sync site={site_id} mode={mode}: fetched={stats.fetched} "
        f"persisted={stats.persisted} failed={stats.failed} duplicates={stats.duplicates}"
    )
    return {"type": "orders", "mode": mode, "status": status, **stats.as_dict()}
