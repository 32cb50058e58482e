"""
test_product_detection.py — Tests for cache-first SKU detection

Covers: cache hits answered without a storefront call, misses looked up
live and backfilled, not-found vs error accounting, stale revalidation.

Called by: pytest
Depends on: stocksync/services/product_detection.py, stocksync/services/product_cache.py
"""

import asyncio
from datetime import datetime, timedelta, timezone

from stocksync.connectors.storefront import StorefrontClient
from stocksync.models import CachedProduct
from stocksync.services.concurrency import AdaptiveConcurrencyController, ConcurrencyLimits
from stocksync.services.product_cache import cached_products, is_stale
from stocksync.services.product_detection import detect, refresh_skus


def _run(coro):
    """Run an async coroutine synchronously in a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _no_sleep(_):
    return None


def _deps(site, http):
    controller = AdaptiveConcurrencyController(ConcurrencyLimits(max_retries=0), sleep=_no_sleep)
    return StorefrontClient.for_site(http, site, controller=controller), controller


def _lookups(storefront):
    return [r for r in storefront.requests if "sku" in r.url.params]


def test_cache_hits_skip_the_storefront(db_session, test_site, storefront, fake_http, make_cached):
    make_cached(test_site, 10, "W1", "instock")
    client, controller = _deps(test_site, fake_http)
    out = _run(detect(db_session, test_site.id, ["W1"], client, controller))

    assert out["stats"] == {"total": 1, "cache_hits": 1, "api_calls": 0, "found": 1, "not_found": 0, "errors": 0}
    assert out["results"][0]["source"] == "cache"
    assert out["results"][0]["stock_status"] == "instock"
    assert _lookups(storefront) == []


def test_miss_is_looked_up_and_backfilled(db_session, test_site, storefront, fake_http):
    storefront.add_product(20, "PARENT", type_="variable")
    storefront.add_product(21, "W2", "outofstock", parent_id=20)
    client, controller = _deps(test_site, fake_http)
    out = _run(detect(db_session, test_site.id, ["W2", " W2 ", ""], client, controller))

    assert out["stats"]["total"] == 1
    assert out["stats"]["api_calls"] == 1
    result = out["results"][0]
    assert result["source"] == "api"
    assert result["parent_id"] == 20
    assert result["stock_status"] == "outofstock"

    row = db_session.query(CachedProduct).filter_by(site_id=test_site.id, sku="W2").one()
    assert row.product_id == 21
    assert row.type == "variation"


def test_not_found_and_errors_are_counted_separately(db_session, test_site, storefront, fake_http):
    storefront.lookup_errors["BROKEN"] = 401
    client, controller = _deps(test_site, fake_http)
    out = _run(detect(db_session, test_site.id, ["MISSING", "BROKEN"], client, controller))

    assert out["stats"]["found"] == 0
    assert out["stats"]["not_found"] == 1
    assert out["stats"]["errors"] == 1
    by_sku = {r["sku"]: r for r in out["results"]}
    assert by_sku["BROKEN"]["error"]
    assert by_sku["MISSING"]["error"] is None


def test_refresh_skus_returns_live_status(db_session, test_site, storefront, fake_http, make_cached):
    old = datetime.now(timezone.utc) - timedelta(hours=48)
    make_cached(test_site, 10, "W1", "instock", synced_at=old)
    storefront.add_product(10, "W1", "outofstock")
    client, controller = _deps(test_site, fake_http)

    assert _run(refresh_skus(db_session, test_site.id, ["W1", "NOPE"], client, controller)) == {"W1": "outofstock"}
    row = cached_products(db_session, test_site.id, ["W1"])["W1"]
    assert row.stock_status == "outofstock"
    assert not is_stale(row, 24)


def test_is_stale(db_session, test_site, make_cached):
    fresh = make_cached(test_site, 1, "F", "instock")
    old = make_cached(test_site, 2, "O", "instock", synced_at=datetime.now(timezone.utc) - timedelta(hours=25))
    assert not is_stale(fresh, 24)
    assert is_stale(old, 24)
