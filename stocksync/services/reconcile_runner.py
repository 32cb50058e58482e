"""
reconcile_runner.py — One reconciliation run for one storefront site

Business Rules:
- Auto-sync disabled, unknown site or disabled site -> "skipped", no remote calls,
  nothing logged
- Missing ERP or storefront credentials -> "failed" run with a configuration error, logged
  and notified, no remote calls
- Site filters override global filters field by field
- Cache rows older than cache_max_age_hours are revalidated live before a
  decision; rows that cannot be revalidated are treated as unknown (skipped)
- Cache misses stay skipped unless refresh_on_cache_miss is on
- Status: partial when any item failed, no_changes when nothing was
  updated, success otherwise; an unexpected exception makes it failed
- The run log row is written once, after the notification attempt
- Nothing raised inside a run escapes run_site_reconciliation

Called by: routers/reconcile.py, scheduler.py
Depends on: connectors (erp, storefront), services (normalizer, mapping,
            reconciliation, stock_updater, product_detection, notifier, run_logger)
"""

import logging
import time

from sqlalchemy.orm import Session

from ..config import settings as default_settings
from ..connectors.base import RemoteError
from ..connectors.erp import ErpClient
from ..connectors.storefront import StorefrontClient
from ..database import utcnow
from ..models import AutoSyncConfig, Site
from .concurrency import AdaptiveConcurrencyController
from .inventory_normalizer import FilterConfig, merge_filters, net_stock_by_code, normalize_inventory
from .mapping_service import build_mapping_index
from .notifier import format_summary, send_notification, should_notify
from .product_cache import cached_products, is_stale
from .product_detection import refresh_skus
from .reconciliation import INSTOCK, OUTOFSTOCK, SyncPolicy, candidate_skus, plan_updates
from .run_logger import RunSummary, record_run
from .stock_updater import FAILED, SUCCESS, StockUpdater

log = logging.getLogger("stocksync.reconcile")

DEFAULT_CONFIG_NAME = "default"


class ConfigurationError(Exception):
    pass


def load_config(db: Session) -> AutoSyncConfig | None:
    return db.query(AutoSyncConfig).filter(AutoSyncConfig.name == DEFAULT_CONFIG_NAME).first()


def get_or_create_config(db: Session) -> AutoSyncConfig:
    config = load_config(db)
    if config is None:
        config = AutoSyncConfig(
            name=DEFAULT_CONFIG_NAME,
            enabled=False,
            site_ids=[],
            filters={
                "categoryFilters": [],
                "skuFilter": "",
                "excludeSkuPrefixes": "",
                "excludeWarehouses": "",
            },
            sync_to_instock=True,
            sync_to_outofstock=True,
            notify_on_success=True,
            notify_on_failure=True,
            notify_on_no_changes=False,
        )
        db.add(config)
        db.commit()
        db.refresh(config)
    return config


def _skipped(summary: RunSummary, reason: str) -> RunSummary:
    summary.status = "skipped"
    summary.error_message = reason
    summary.completed_at = utcnow()
    log.info(f"Reconciliation skipped for site {summary.site_id}: {reason}")
    return summary


async def _resolve_cache(db, site, skus, client, controller, settings) -> tuple[dict[str, str], dict]:
    """Trusted stock status per SKU after revalidating stale rows."""
    cache = cached_products(db, site.id, skus)
    stale = [s for s, row in cache.items() if is_stale(row, settings.cache_max_age_hours)]
    missing = [s for s in skus if s not in cache] if settings.refresh_on_cache_miss else []

    status = {s: row.stock_status for s, row in cache.items() if row.stock_status}
    for s in stale:
        status.pop(s, None)
    refreshed = await refresh_skus(db, site.id, stale + missing, client, controller)
    status.update(refreshed)
    return status, {
        "cache_hits": len(cache),
        "stale_revalidated": len(stale),
        "misses_looked_up": len(missing),
        "refreshed": len(refreshed),
    }


async def _reconcile(db: Session, site: Site, config: AutoSyncConfig, http, settings, summary: RunSummary, erp=None):
    controller = AdaptiveConcurrencyController.from_settings(settings)
    erp = erp or ErpClient.from_settings(http, settings, controller)

    filters = merge_filters(FilterConfig.from_site(site.filters), FilterConfig.from_global(config.filters))
    raw_rows = await erp.fetch_inventory(
        settings.erp_inventory_schema, settings.erp_warehouse_schema, settings.erp_shortfall_field
    )
    rows = normalize_inventory(raw_rows, filters)

    try:
        records = await erp.fetch_sku_mappings(settings.erp_sku_mapping_schema)
    except RemoteError as e:
        log.warning(f"SKU mapping fetch failed, using identity mapping: {e}")
        records = []
    mapping = build_mapping_index(records)

    net = net_stock_by_code(rows)
    skus = candidate_skus(net, mapping)
    client = StorefrontClient.for_site(http, site, controller=controller, timeout=settings.http_timeout_seconds)
    status, cache_stats = await _resolve_cache(db, site, skus, client, controller, settings)

    plan = plan_updates(
        net,
        mapping,
        status,
        SyncPolicy(bool(config.sync_to_instock), bool(config.sync_to_outofstock)),
    )
    summary.total_checked = plan.checked
    summary.skipped = plan.skipped
    log.info(
        f"Site {site.name}: {len(raw_rows)} ERP rows -> {len(rows)} codes, "
        f"{plan.checked} checked, {len(plan.actions)} to update, {len(plan.missing)} not cached"
    )

    updater = StockUpdater(db, site.id, client, controller)
    for result in await updater.apply_all(plan.actions):
        if result.outcome == SUCCESS:
            if result.target == INSTOCK:
                summary.synced_to_instock += 1
            elif result.target == OUTOFSTOCK:
                summary.synced_to_outofstock += 1
            summary.add_detail({"sku": result.sku, "action": result.target})
        elif result.outcome == FAILED:
            summary.failed += 1
            summary.add_detail({"sku": result.sku, "action": result.target, "error": result.reason})
        else:
            summary.skipped += 1

    summary.stats = {
        "erp_rows": len(raw_rows),
        "normalized_codes": len(rows),
        "mapping": mapping.stats(),
        "not_cached": len(plan.missing),
        **cache_stats,
        "controller": controller.snapshot(),
    }
    summary.resolve_status()


async def run_site_reconciliation(
    db: Session, site_id: int, http, settings=None, erp=None, force: bool = False
) -> RunSummary:
    """Run one reconciliation for a site. Always returns a summary; never raises."""
    settings = settings or default_settings
    started = time.monotonic()
    summary = RunSummary(site_id=site_id)

    config = load_config(db)
    if config is None or (not config.enabled and not force):
        return _skipped(summary, "Auto-sync is disabled")
    summary.config_id = config.id

    site = db.get(Site, site_id)
    if site is None:
        return _skipped(summary, f"Site {site_id} not found")
    summary.site_name = site.name
    if not site.enabled:
        return _skipped(summary, f"Site {site.name} is disabled")

    try:
        if erp is None and not settings.erp_configured:
            raise ConfigurationError("ERP credentials are not configured")
        if not site.api_key or not site.api_secret:
            raise ConfigurationError(f"Storefront credentials are not configured for {site.name}")
        await _reconcile(db, site, config, http, settings, summary, erp)
    except Exception as e:
        db.rollback()
        if isinstance(e, ConfigurationError):
            log.error(f"Reconciliation not started for {site.name}: {e}")
        else:
            log.exception(f"Reconciliation failed for {site.name}")
        summary.status = "failed"
        summary.error_message = str(e)[:2000]

    summary.duration_ms = int((time.monotonic() - started) * 1000)
    summary.completed_at = utcnow()

    sent, notify_error = False, None
    if should_notify(config, summary.status):
        sent, notify_error = await send_notification(
            http,
            config.webhook_url,
            f"Stock sync: {site.name}",
            format_summary(summary),
            ok=summary.status in ("success", "no_changes"),
        )

    try:
        record_run(db, summary, sent, notify_error)
        config.last_run_at = summary.completed_at
        config.last_run_status = summary.status
        config.last_run_summary = {
            k: v for k, v in summary.as_dict().items() if k not in ("details", "stats")
        }
        if summary.status != "failed":
            site.last_sync_at = summary.completed_at
        db.commit()
    except Exception:
        db.rollback()
        log.exception(f"Could not record reconciliation run for {site.name}")

    log.info(
        f"Reconciliation {site.name}: {summary.status} checked={summary.total_checked} "
        f"+instock={summary.synced_to_instock} +outofstock={summary.synced_to_outofstock} "
        f"failed={summary.failed} in {summary.duration_ms}ms"
    )
    return summary


async def run_auto_sync(db: Session, http, settings=None) -> list[RunSummary]:
    """Reconcile every site listed on the enabled auto-sync config, one after another."""
    config = load_config(db)
    if config is None or not config.enabled:
        return []
    summaries = []
    for site_id in config.site_ids or []:
        summaries.append(await run_site_reconciliation(db, site_id, http, settings))
    return summaries
