"""Reconciliation API — run a site now, run history, policy and filters, detection."""

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from ..connectors.base import StorefrontError
from ..connectors.storefront import StorefrontClient
from ..database import get_db
from ..dependencies import get_http
from ..models import Site, SiteFilter
from ..schemas.sync import (
    AutoSyncConfigUpdate,
    DetectRequest,
    RunLogOut,
    SiteFilterUpdate,
)
from ..services import product_detection
from ..services.concurrency import AdaptiveConcurrencyController
from ..services.reconcile_runner import get_or_create_config, run_site_reconciliation
from ..services.run_logger import list_runs

router = APIRouter(tags=["reconcile"])


def _config_dict(config) -> dict:
    return {
        "id": config.id,
        "enabled": config.enabled,
        "site_ids": config.site_ids or [],
        "filters": config.filters or {},
        "sync_to_instock": config.sync_to_instock,
        "sync_to_outofstock": config.sync_to_outofstock,
        "webhook_url": config.webhook_url,
        "notify_on_success": config.notify_on_success,
        "notify_on_failure": config.notify_on_failure,
        "notify_on_no_changes": config.notify_on_no_changes,
        "last_run_at": config.last_run_at,
        "last_run_status": config.last_run_status,
        "last_run_summary": config.last_run_summary,
    }


def _site_or_404(db: Session, site_id: int) -> Site:
    site = db.get(Site, site_id)
    if site is None:
        raise HTTPException(404, f"Site {site_id} not found")
    return site


# ── Runs ─────────────────────────────────────────────────────────────


@router.post("/api/sync/single-site")
async def sync_single_site(
    site_id: int = Query(...),
    force: bool = Query(False),
    db: Session = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http),
):
    """Reconcile one site now. `force` runs even when auto-sync is switched off."""
    summary = await run_site_reconciliation(db, site_id, http, force=force)
    return summary.as_dict()


@router.get("/api/sync/auto-logs", response_model=list[RunLogOut])
def auto_sync_logs(
    site_id: int | None = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return [RunLogOut.model_validate(r) for r in list_runs(db, site_id, limit)]


# ── Policy ───────────────────────────────────────────────────────────


@router.get("/api/sync/auto-config")
def get_auto_config(db: Session = Depends(get_db)):
    return _config_dict(get_or_create_config(db))


@router.put("/api/sync/auto-config")
def update_auto_config(body: AutoSyncConfigUpdate, db: Session = Depends(get_db)):
    config = get_or_create_config(db)
    changes = body.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(config, key, value)
    db.commit()
    logger.info("Auto-sync config updated: {}", sorted(changes))
    return _config_dict(config)


@router.get("/api/sync/site-filters/{site_id}")
def get_site_filters(site_id: int, db: Session = Depends(get_db)):
    site = _site_or_404(db, site_id)
    f = site.filters
    if f is None:
        return {"site_id": site_id, "sku_filter": "", "exclude_sku_prefixes": "",
                "category_filters": [], "exclude_warehouses": ""}
    return {
        "site_id": site_id,
        "sku_filter": f.sku_filter or "",
        "exclude_sku_prefixes": f.exclude_sku_prefixes or "",
        "category_filters": f.category_filters or [],
        "exclude_warehouses": f.exclude_warehouses or "",
    }


@router.put("/api/sync/site-filters/{site_id}")
def put_site_filters(site_id: int, body: SiteFilterUpdate, db: Session = Depends(get_db)):
    site = _site_or_404(db, site_id)
    f = site.filters
    if f is None:
        f = SiteFilter(site_id=site.id)
        site.filters = f
    f.sku_filter = body.sku_filter
    f.exclude_sku_prefixes = body.exclude_sku_prefixes
    f.category_filters = body.category_filters
    f.exclude_warehouses = body.exclude_warehouses
    db.commit()
    return get_site_filters(site_id, db)


# ── Detection ────────────────────────────────────────────────────────


@router.post("/api/products/detect-cached")
async def detect_cached(
    body: DetectRequest,
    db: Session = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http),
):
    """Stock status for SKUs: cache first, storefront lookup (and backfill) on miss."""
    from ..config import settings

    site = _site_or_404(db, body.site_id)
    controller = AdaptiveConcurrencyController.from_settings(settings)
    try:
        client = StorefrontClient.for_site(
            http, site, controller=controller, timeout=settings.http_timeout_seconds
        )
    except StorefrontError as e:
        raise HTTPException(400, str(e))
    return await product_detection.detect(db, site.id, body.skus, client, controller)
