"""
inventory_normalizer.py — Multi-warehouse ERP rows -> one net-stock figure per code

Business Rules:
- Filter order: exclude warehouses, merge by code, category allow-list,
  SKU allow-list, SKU prefix exclude-list
- Every step is skipped when its list is empty
- Site-level filters override global ones field by field (non-empty wins)
- Merged rows: available and shortfall summed, warehouse "merged",
  categories from the first row seen
- Matching is case-insensitive; lists split on commas and newlines
- Net stock = available - shortfall; downstream never looks at raw available

Called by: services/reconcile_runner.py
Depends on: schemas/erp.py, utils.split_list
"""

from dataclasses import dataclass, field

from ..schemas.erp import MERGED_WAREHOUSE, InventoryRow
from ..utils import split_list


@dataclass
class FilterConfig:
    sku_filter: list[str] = field(default_factory=list)
    exclude_sku_prefixes: list[str] = field(default_factory=list)
    category_filters: list[str] = field(default_factory=list)
    exclude_warehouses: list[str] = field(default_factory=list)

    @classmethod
    def from_global(cls, filters: dict | None) -> "FilterConfig":
        filters = filters or {}
        return cls(
            sku_filter=split_list(filters.get("skuFilter")),
            exclude_sku_prefixes=split_list(filters.get("excludeSkuPrefixes")),
            category_filters=split_list(filters.get("categoryFilters")),
            exclude_warehouses=split_list(filters.get("excludeWarehouses")),
        )

    @classmethod
    def from_site(cls, site_filter) -> "FilterConfig":
        if site_filter is None:
            return cls()
        return cls(
            sku_filter=split_list(site_filter.sku_filter),
            exclude_sku_prefixes=split_list(site_filter.exclude_sku_prefixes),
            category_filters=split_list(site_filter.category_filters),
            exclude_warehouses=split_list(site_filter.exclude_warehouses),
        )


def merge_filters(site: FilterConfig, global_: FilterConfig) -> FilterConfig:
    return FilterConfig(
        sku_filter=site.sku_filter or global_.sku_filter,
        exclude_sku_prefixes=site.exclude_sku_prefixes or global_.exclude_sku_prefixes,
        category_filters=site.category_filters or global_.category_filters,
        exclude_warehouses=site.exclude_warehouses or global_.exclude_warehouses,
    )


def exclude_warehouses(rows: list[InventoryRow], patterns: list[str]) -> list[InventoryRow]:
    if not patterns:
        return rows
    return [r for r in rows if not any(p in r.warehouse.lower() for p in patterns)]


def merge_by_code(rows: list[InventoryRow]) -> list[InventoryRow]:
    merged: dict[str, InventoryRow] = {}
    for row in rows:
        existing = merged.get(row.product_code)
        if existing is None:
            merged[row.product_code] = row.model_copy(
                update={"warehouse": MERGED_WAREHOUSE, "warehouse_id": ""}
            )
        else:
            existing.available += row.available
            existing.shortfall += row.shortfall
    return list(merged.values())


def filter_categories(rows: list[InventoryRow], patterns: list[str]) -> list[InventoryRow]:
    if not patterns:
        return rows
    return [
        r for r in rows
        if any(p in c.lower() for c in r.categories if c for p in patterns)
    ]


def filter_skus(rows: list[InventoryRow], patterns: list[str]) -> list[InventoryRow]:
    if not patterns:
        return rows
    return [
        r for r in rows
        if any(p in r.product_code.lower() or p in r.name.lower() for p in patterns)
    ]


def exclude_prefixes(rows: list[InventoryRow], prefixes: list[str]) -> list[InventoryRow]:
    if not prefixes:
        return rows
    return [r for r in rows if not r.product_code.lower().startswith(tuple(prefixes))]


def normalize_inventory(rows: list[InventoryRow], filters: FilterConfig) -> list[InventoryRow]:
    rows = exclude_warehouses(rows, filters.exclude_warehouses)
    rows = merge_by_code(rows)
    rows = filter_categories(rows, filters.category_filters)
    rows = filter_skus(rows, filters.sku_filter)
    return exclude_prefixes(rows, filters.exclude_sku_prefixes)


def net_stock_by_code(rows: list[InventoryRow]) -> dict[str, float]:
    return {r.product_code: r.net_stock for r in rows}
