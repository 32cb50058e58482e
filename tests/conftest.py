"""
conftest.py — Shared Test Fixtures for StockSync

Provides an in-memory SQLite database, a FastAPI TestClient wired to it,
factory fixtures for sites, the auto-sync config and cached products, and
FakeStorefront, an in-memory storefront REST API behind httpx.MockTransport.

Business Rules:
- All tests run against an isolated in-memory DB
- No test talks to a real network: every client uses a MockTransport
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: stocksync.models (Base), stocksync.database (get_db), stocksync.main (app)
"""

import os
os.environ["TESTING"] = "1"  # Must be set before importing stocksync modules

import json
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stocksync.config import Settings
from stocksync.models import AutoSyncConfig, Base, CachedProduct, Site

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with ERP credentials and small, fast limits."""
    return Settings(
        erp_engine_code="engine-code",
        erp_engine_secret="engine-secret",
        erp_base_url="https://erp.test/OpenApi/Invoke",
        erp_page_delay_ms=0,
        concurrency_initial_delay_ms=0,
        concurrency_min_delay_ms=0,
        concurrency_max_retries=1,
        order_sync_batch_size=50,
        sync_page_size=100,
        cache_max_age_hours=24,
    )


@pytest.fixture()
def test_site(db_session: Session) -> Site:
    site = Site(
        name="Shop One",
        url="https://shop.test",
        api_key="ck_test",
        api_secret="cs_test",
        enabled=True,
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(site)
    db_session.commit()
    db_session.refresh(site)
    return site


@pytest.fixture()
def auto_config(db_session: Session, test_site: Site) -> AutoSyncConfig:
    config = AutoSyncConfig(
        name="default",
        enabled=True,
        site_ids=[test_site.id],
        filters={"categoryFilters": [], "skuFilter": "", "excludeSkuPrefixes": "", "excludeWarehouses": ""},
        sync_to_instock=True,
        sync_to_outofstock=True,
        webhook_url=None,
        notify_on_success=True,
        notify_on_failure=True,
        notify_on_no_changes=False,
    )
    db_session.add(config)
    db_session.commit()
    db_session.refresh(config)
    return config


@pytest.fixture()
def make_cached(db_session: Session):
    """Factory: insert a cached product row for a site."""

    def _make(site: Site, product_id: int, sku: str, stock_status: str,
              parent_id: int | None = None, synced_at: datetime | None = None) -> CachedProduct:
        row = CachedProduct(
            site_id=site.id,
            product_id=product_id,
            parent_id=parent_id,
            sku=sku,
            name=f"Product {sku}",
            type="variation" if parent_id else "simple",
            stock_status=stock_status,
            synced_at=synced_at or datetime.now(timezone.utc),
        )
        db_session.add(row)
        db_session.commit()
        return row

    return _make


@pytest.fixture()
def client(db_session: Session) -> TestClient:
    """FastAPI TestClient with get_db overridden to the test session.

    get_http is overridden per test via app.dependency_overrides when a
    route makes outbound calls.
    """
    from stocksync.database import get_db
    from stocksync.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# ── Fake storefront ──────────────────────────────────────────────────


class FakeStorefront:
    """In-memory storefront REST API served through httpx.MockTransport.

    products:   id -> product dict (variations carry parent_id + type "variation")
    orders:     list of order dicts, returned in the given order
    update_errors / lookup_errors: sku -> HTTP status to answer with
    """

    def __init__(self):
        self.products: dict[int, dict] = {}
        self.orders: list[dict] = []
        self.update_errors: dict[str, int] = {}
        self.lookup_errors: dict[str, int] = {}
        self.listing_error: int | None = None
        self.requests: list[httpx.Request] = []

    def add_product(self, pid, sku, stock_status="instock", parent_id=0, type_=None, **extra):
        self.products[pid] = {
            "id": pid,
            "parent_id": parent_id,
            "sku": sku,
            "name": f"Product {sku}",
            "type": type_ or ("variation" if parent_id else "simple"),
            "status": "publish",
            "stock_status": stock_status,
            "stock_quantity": None,
            "manage_stock": False,
            "price": "9.90",
            "date_modified_gmt": "2026-01-01T00:00:00",
            **extra,
        }
        return self.products[pid]

    @property
    def updates(self) -> list[tuple[str, dict]]:
        return [
            (r.url.path, json.loads(r.content))
            for r in self.requests if r.method == "PUT"
        ]

    def _page(self, items, request):
        page = int(request.url.params.get("page", 1))
        per_page = int(request.url.params.get("per_page", 100))
        total_pages = max(1, -(-len(items) // per_page))
        chunk = items[(page - 1) * per_page:page * per_page]
        return httpx.Response(200, json=chunk, headers={"X-WP-TotalPages": str(total_pages)})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.split("/wp-json/wc/v3/", 1)[-1]
        parts = path.split("/")

        if request.method == "PUT":
            pid = int(parts[-1])
            product = self.products.get(pid)
            if product is None:
                return httpx.Response(404, json={"code": "not_found"})
            status = self.update_errors.get(product["sku"])
            if status:
                return httpx.Response(status, json={"code": "error"})
            product.update(json.loads(request.content))
            return httpx.Response(200, json=product)

        if parts == ["products"] and "sku" in request.url.params:
            sku = request.url.params["sku"]
            status = self.lookup_errors.get(sku)
            if status:
                return httpx.Response(status, json={"code": "error"})
            return httpx.Response(200, json=[p for p in self.products.values() if p["sku"] == sku])

        if self.listing_error:
            return httpx.Response(self.listing_error, text="listing unavailable")
        if parts == ["orders"]:
            return self._page(self.orders, request)
        if parts == ["products"]:
            top = [p for p in self.products.values() if not p["parent_id"]]
            return self._page(top, request)
        if len(parts) == 3 and parts[0] == "products" and parts[2] == "variations":
            parent = int(parts[1])
            return self._page([p for p in self.products.values() if p["parent_id"] == parent], request)
        return httpx.Response(404, json={"code": "rest_no_route"})


@pytest.fixture()
def storefront() -> FakeStorefront:
    return FakeStorefront()


@pytest.fixture()
def fake_http(storefront: FakeStorefront) -> httpx.AsyncClient:
    """httpx client whose every request is answered by the fake storefront."""
    return httpx.AsyncClient(transport=httpx.MockTransport(storefront))
