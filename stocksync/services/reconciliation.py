"""
reconciliation.py — Stock status decision engine (pure, no I/O)

Business Rules:
- Storefront SKU missing from the cache -> skipped; never act on an unknown product
- instock and net stock <= 0 and sync_to_outofstock -> outofstock
- outofstock and net stock > 0 and sync_to_instock -> instock
- anything else -> skipped (already consistent, or direction disabled)
- Each (ERP code, storefront SKU) pair is judged on its own
- Decisions use net stock; the mapping multiplier is carried for reporting only

Called by: services/reconcile_runner.py
Depends on: services/mapping_service.py
"""

from dataclasses import dataclass, field

from .mapping_service import MappingIndex

INSTOCK = "instock"
OUTOFSTOCK = "outofstock"


@dataclass(frozen=True)
class SyncPolicy:
    sync_to_instock: bool = True
    sync_to_outofstock: bool = True


@dataclass(frozen=True)
class StockAction:
    sku: str
    target: str
    erp_code: str
    net_stock: float
    multiplier: float = 1


@dataclass
class ReconciliationPlan:
    actions: list[StockAction] = field(default_factory=list)
    checked: int = 0
    skipped: int = 0
    missing: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.actions


def decide_target(current: str | None, net_stock: float, policy: SyncPolicy) -> str | None:
    """Target status for one SKU, or None when no update is needed."""
    if current == INSTOCK and net_stock <= 0 and policy.sync_to_outofstock:
        return OUTOFSTOCK
    if current == OUTOFSTOCK and net_stock > 0 and policy.sync_to_instock:
        return INSTOCK
    return None


def plan_updates(
    net_stock: dict[str, float],
    mapping: MappingIndex,
    cached_status: dict[str, str],
    policy: SyncPolicy,
) -> ReconciliationPlan:
    plan = ReconciliationPlan()
    for code, n in net_stock.items():
        for rel in mapping.relations(code):
            plan.checked += 1
            current = cached_status.get(rel.storefront_sku)
            if current is None:
                plan.skipped += 1
                plan.missing.append(rel.storefront_sku)
                continue
            target = decide_target(current, n, policy)
            if target is None:
                plan.skipped += 1
                continue
            plan.actions.append(
                StockAction(rel.storefront_sku, target, code, n, rel.multiplier)
            )
    return plan


def candidate_skus(net_stock: dict[str, float], mapping: MappingIndex) -> list[str]:
    """All storefront SKUs a run will look at, in first-seen order."""
    seen: dict[str, None] = {}
    for code in net_stock:
        for sku in mapping.storefront_skus(code):
            seen.setdefault(sku, None)
    return list(seen)
