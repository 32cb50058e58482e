"""
stock_updater.py — Remote update executor for storefront stock status

Business Rules:
- A SKU resolves to a simple product or a variation; variations are updated
  through products/{parent_id}/variations/{id}, everything else products/{id}
- outofstock forces managed stock with quantity 0; instock turns stock
  management off
- The confirmed response is written back to the products cache; a failed
  write-back is logged and does not change the item's success
- Every item ends as an ItemResult; nothing raised for one SKU reaches another
- Permanent failures (unknown SKU, 4xx) come back as results; only transient
  failures count against the controller slice

Called by: services/reconcile_runner.py
Depends on: connectors/storefront.py, services/concurrency.py, services/product_cache.py
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..connectors.base import RemoteError, TransientError
from ..schemas.storefront import StorefrontProduct
from .product_cache import cache_product
from .reconciliation import OUTOFSTOCK, StockAction

log = logging.getLogger("stocksync.stock_updater")

SUCCESS = "success"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ItemResult:
    sku: str
    outcome: str
    target: str | None = None
    reason: str | None = None
    product_id: int | None = None

    @classmethod
    def success(cls, sku, target, product_id=None):
        return cls(sku, SUCCESS, target, product_id=product_id)

    @classmethod
    def skipped(cls, sku, reason, target=None):
        return cls(sku, SKIPPED, target, reason=reason)

    @classmethod
    def failed(cls, sku, reason, target=None):
        return cls(sku, FAILED, target, reason=reason)


class ItemFailed(Exception):
    """Transient failure that outlived retries; the controller counts it against the slice."""


def resolve_update_path(product: StorefrontProduct) -> str:
    if product.is_variation:
        return f"products/{product.parent_id}/variations/{product.id}"
    return f"products/{product.id}"


def build_stock_payload(target: str) -> dict:
    if target == OUTOFSTOCK:
        return {"stock_status": target, "manage_stock": True, "stock_quantity": 0}
    return {"stock_status": target, "manage_stock": False}


class StockUpdater:
    def __init__(self, db: Session, site_id: int, client, controller):
        self.db = db
        self.site_id = site_id
        self.client = client
        self.controller = controller

    async def _apply(self, sku: str, target: str) -> ItemResult:
        try:
            product = await self.client.find_by_sku(sku)
        except TransientError as e:
            raise ItemFailed(f"lookup failed: {e}") from e
        except RemoteError as e:
            return ItemResult.failed(sku, f"lookup failed: {e}", target)
        if product is None:
            return ItemResult.failed(sku, "not found on storefront", target)

        try:
            confirmed = await self.client.update(
                resolve_update_path(product), build_stock_payload(target)
            )
        except TransientError as e:
            raise ItemFailed(f"update failed: {e}") from e
        except RemoteError as e:
            return ItemResult.failed(sku, f"update failed: {e}", target)

        self._write_back(sku, product, confirmed)
        return ItemResult.success(sku, target, product.id)

    def _write_back(self, sku: str, product: StorefrontProduct, confirmed: StorefrontProduct) -> None:
        try:
            cache_product(self.db, self.site_id, confirmed, parent_id=product.parent_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.warning(f"Cache write-back failed for {sku} (remote update kept): {e}")

    async def apply(self, sku: str, target: str) -> ItemResult:
        try:
            return await self._apply(sku, target)
        except ItemFailed as e:
            return ItemResult.failed(sku, str(e), target)
        except Exception as e:
            log.exception(f"Unexpected error updating {sku}")
            return ItemResult.failed(sku, f"unexpected: {e}", target)

    async def apply_all(self, actions: list[StockAction], should_stop=None) -> list[ItemResult]:
        outcomes = await self.controller.run(
            actions, lambda a: self._apply(a.sku, a.target), should_stop=should_stop
        )
        results = []
        for outcome in outcomes:
            action = outcome.item
            if outcome.ok:
                results.append(outcome.value)
            else:
                results.append(ItemResult.failed(action.sku, str(outcome.error), action.target))
        processed = {id(o.item) for o in outcomes}
        for action in actions:
            if id(action) not in processed:
                results.append(ItemResult.skipped(action.sku, "stopped", action.target))
        return results
