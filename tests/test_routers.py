"""
test_routers.py — HTTP-level tests for the sites, sync queue and
reconciliation routers

get_db is overridden by the conftest client fixture; get_http is overridden
here with the fake storefront client so no request leaves the process.

Called by: pytest
Depends on: stocksync/routers/*, stocksync/main.py
"""

from unittest.mock import patch

import pytest

from stocksync.dependencies import get_http
from stocksync.main import app
from stocksync.models import SyncTask


@pytest.fixture()
def api(client, fake_http):
    app.dependency_overrides[get_http] = lambda: fake_http
    yield client


def test_health(api):
    assert api.get("/health").json() == {"status": "ok"}


# ── Sites ────────────────────────────────────────────────────────────


def test_site_create_list_update(api):
    resp = api.post("/api/sites", json={
        "name": "Shop Two", "url": "https://two.test", "api_key": "ck", "api_secret": "cs",
    })
    assert resp.status_code == 201
    body = resp.json()
    assert "api_secret" not in body
    site_id = body["id"]

    assert [s["name"] for s in api.get("/api/sites").json()] == ["Shop Two"]
    resp = api.patch(f"/api/sites/{site_id}", json={"enabled": False})
    assert resp.json()["enabled"] is False
    assert api.patch("/api/sites/9999", json={"enabled": False}).status_code == 404


def test_site_url_validated(api):
    resp = api.post("/api/sites", json={"name": "x", "url": "ftp://x", "api_key": "k", "api_secret": "s"})
    assert resp.status_code == 422


# ── Queue ────────────────────────────────────────────────────────────


def test_enqueue_then_conflict(api, db_session, test_site):
    resp = api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "orders", "priority": 7})
    assert resp.status_code == 201
    assert resp.json()["status"] == "pending"
    assert resp.json()["priority"] == 7

    resp = api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "orders"})
    assert resp.status_code == 409
    assert db_session.query(SyncTask).count() == 1


def test_enqueue_validation(api, test_site):
    assert api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "refunds"}).status_code == 422
    assert api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "orders", "priority": 0}).status_code == 422
    assert api.post("/api/sync/queue", json={"site_id": 9999, "task_type": "orders"}).status_code == 404


def test_list_cancel_delete(api, test_site):
    task_id = api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "products"}).json()["id"]

    listing = api.get("/api/sync/queue").json()
    assert [t["id"] for t in listing["tasks"]] == [task_id]
    assert listing["stats"]["pending"] == 1
    assert api.get("/api/sync/queue", params={"status": "bogus"}).status_code == 422

    assert api.delete(f"/api/sync/queue/{task_id}").status_code == 400
    resp = api.patch("/api/sync/queue", json={"task_id": task_id, "action": "cancel"})
    assert resp.json()["status"] == "cancelled"
    assert api.patch("/api/sync/queue", json={"task_id": task_id, "action": "retry"}).status_code == 400
    assert api.delete(f"/api/sync/queue/{task_id}").json() == {"ok": True}
    assert api.patch("/api/sync/queue", json={"task_id": task_id, "action": "cancel"}).status_code == 404


def test_process_now(api, test_site):
    async def ok(*args, **kwargs):
        return {"status": "completed"}

    task_id = api.post("/api/sync/queue", json={"site_id": test_site.id, "task_type": "orders"}).json()["id"]
    with patch.dict("stocksync.services.batch_processor.EXECUTORS", {"orders": ok}):
        summary = api.post("/api/sync/queue/process").json()
    assert summary["completed"] == 1
    tasks = api.get("/api/sync/queue", params={"status": "completed"}).json()["tasks"]
    assert [t["id"] for t in tasks] == [task_id]


# ── Reconciliation policy and filters ────────────────────────────────


def test_auto_config_roundtrip(api, test_site):
    config = api.get("/api/sync/auto-config").json()
    assert config["enabled"] is False

    resp = api.put("/api/sync/auto-config", json={
        "enabled": True,
        "site_ids": [test_site.id],
        "filters": {"excludeWarehouses": "damaged"},
        "notify_on_no_changes": True,
    })
    body = resp.json()
    assert body["enabled"] is True
    assert body["site_ids"] == [test_site.id]
    assert body["filters"]["excludeWarehouses"] == "damaged"
    assert body["notify_on_success"] is True
    assert body["notify_on_no_changes"] is True


def test_site_filters_roundtrip(api, test_site):
    empty = api.get(f"/api/sync/site-filters/{test_site.id}").json()
    assert empty["sku_filter"] == ""

    resp = api.put(f"/api/sync/site-filters/{test_site.id}", json={
        "sku_filter": "abc,def", "category_filters": ["Pods"],
    })
    assert resp.json()["sku_filter"] == "abc,def"
    assert resp.json()["category_filters"] == ["Pods"]
    assert api.get(f"/api/sync/site-filters/{test_site.id}").json()["category_filters"] == ["Pods"]
    assert api.get("/api/sync/site-filters/9999").status_code == 404


def test_single_site_skipped_when_disabled(api, test_site):
    body = api.post("/api/sync/single-site", params={"site_id": test_site.id}).json()
    assert body["status"] == "skipped"
    assert api.get("/api/sync/auto-logs").json() == []


def test_auto_logs_lists_runs(api, db_session, test_site):
    from stocksync.services.run_logger import RunSummary, record_run

    record_run(db_session, RunSummary(site_id=test_site.id, site_name="Shop One", status="no_changes"))
    logs = api.get("/api/sync/auto-logs", params={"site_id": test_site.id}).json()
    assert [log["status"] for log in logs] == ["no_changes"]


# ── Detection ────────────────────────────────────────────────────────


def test_detect_cached(api, test_site, storefront, make_cached):
    make_cached(test_site, 10, "W1", "instock")
    storefront.add_product(11, "W2", "outofstock")
    resp = api.post("/api/products/detect-cached", json={"site_id": test_site.id, "skus": ["W1", "W2", "W3"]})
    body = resp.json()
    assert body["stats"]["cache_hits"] == 1
    assert body["stats"]["api_calls"] == 2
    assert body["stats"]["found"] == 2
    assert body["stats"]["not_found"] == 1


def test_detect_validation(api, test_site):
    assert api.post("/api/products/detect-cached", json={"site_id": test_site.id, "skus": []}).status_code == 422
    assert api.post("/api/products/detect-cached", json={"site_id": 9999, "skus": ["x"]}).status_code == 404
