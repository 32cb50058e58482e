"""
schemas/erp.py — Typed records for ERP biz-object payloads

The ERP returns loosely typed dicts keyed by generated field codes. These
models are the single place those codes are read; everything downstream
works with named attributes.

Business Rules:
- An inventory row needs a product code and at least one quantity field
  (F0000030 available or F0000083 available-after-outbound); others are dropped
- Category level 2 is "<category> <qualifier>" when the qualifier is present
- Unknown warehouse ids render as "warehouse_<first 8 chars>"
- Mapping rows missing either SKU are dropped; multiplier defaults to 1

Called by: connectors/erp.py, services/inventory_normalizer.py, services/mapping_service.py
Depends on: pydantic, utils (safe_float)
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..utils import safe_float

# Inventory table field codes
F_PRODUCT_CODE = "F0000001"
F_CATEGORY = "F0000003"
F_WAREHOUSE_ID = "F0000007"
F_AVAILABLE = "F0000030"
F_CATEGORY_QUALIFIER = "F0000063"
F_AVAILABLE_AFTER_OUTBOUND = "F0000083"

# Mapping table field codes
F_MAP_STOREFRONT_SKU = "F0000001"
F_MAP_ERP_CODE = "F0000002"
F_MAP_QUANTITY = "F0000003"

MERGED_WAREHOUSE = "merged"


def warehouse_label(warehouse_id: str, names: dict[str, str]) -> str:
    if not warehouse_id:
        return ""
    return names.get(warehouse_id) or f"warehouse_{warehouse_id[:8]}"


class InventoryRow(BaseModel):
    """One ERP inventory row: a product code in one warehouse."""

    product_code: str
    name: str = ""
    warehouse_id: str = ""
    warehouse: str = ""
    available: float = 0
    shortfall: float = 0
    category_1: str = ""
    category_2: str = ""
    category_3: str = ""

    @property
    def net_stock(self) -> float:
        return self.available - self.shortfall

    @property
    def categories(self) -> tuple[str, str, str]:
        return (self.category_1, self.category_2, self.category_3)

    @classmethod
    def from_biz_object(
        cls,
        obj: dict,
        warehouse_names: dict[str, str] | None = None,
        shortfall_field: str = "",
    ) -> InventoryRow | None:
        code = str(obj.get(F_PRODUCT_CODE) or "").strip()
        if not code:
            return None
        if obj.get(F_AVAILABLE) in (None, "") and obj.get(F_AVAILABLE_AFTER_OUTBOUND) in (None, ""):
            return None

        category = str(obj.get(F_CATEGORY) or "").strip()
        qualifier = str(obj.get(F_CATEGORY_QUALIFIER) or "").strip()
        warehouse_id = str(obj.get(F_WAREHOUSE_ID) or "")
        shortfall = safe_float(obj.get(shortfall_field)) if shortfall_field else 0

        return cls(
            product_code=code,
            name=str(obj.get("Name") or ""),
            warehouse_id=warehouse_id,
            warehouse=warehouse_label(warehouse_id, warehouse_names or {}),
            available=safe_float(obj.get(F_AVAILABLE)) or 0,
            shortfall=shortfall or 0,
            category_1=category,
            category_2=f"{category} {qualifier}".strip() if qualifier else category,
            category_3="",
        )


class SkuMappingRecord(BaseModel):
    """One relation from an ERP product code to a storefront SKU."""

    erp_code: str
    storefront_sku: str
    multiplier: float = Field(default=1, gt=0)

    @classmethod
    def from_biz_object(cls, obj: dict) -> SkuMappingRecord | None:
        sku = str(obj.get(F_MAP_STOREFRONT_SKU) or "").strip()
        code = str(obj.get(F_MAP_ERP_CODE) or "").strip()
        if not sku or not code:
            return None
        qty = safe_float(obj.get(F_MAP_QUANTITY))
        return cls(erp_code=code, storefront_sku=sku, multiplier=qty if qty and qty > 0 else 1)
