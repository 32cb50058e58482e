"""SKU mapping index — ERP product code <-> storefront SKU.

One ERP code can feed several storefront listings (bundles, multipacks),
each with its own quantity multiplier. The index is rebuilt once per run.
"""

from dataclasses import dataclass, field

from ..schemas.erp import SkuMappingRecord


@dataclass(frozen=True)
class MappingRelation:
    erp_code: str
    storefront_sku: str
    multiplier: float = 1


@dataclass
class MappingIndex:
    forward: dict[str, dict[str, MappingRelation]] = field(default_factory=dict)
    reverse: dict[str, MappingRelation] = field(default_factory=dict)

    def storefront_skus(self, erp_code: str) -> list[str]:
        """Mapped storefront SKUs for a code; the code itself when unmapped."""
        rels = self.forward.get(erp_code)
        if not rels:
            return [erp_code]
        return list(rels)

    def relations(self, erp_code: str) -> list[MappingRelation]:
        rels = self.forward.get(erp_code)
        if not rels:
            return [MappingRelation(erp_code, erp_code, 1)]
        return list(rels.values())

    def erp_code_for(self, storefront_sku: str) -> str | None:
        rel = self.reverse.get(storefront_sku)
        return rel.erp_code if rel else None

    def stats(self) -> dict:
        return {
            "erp_codes": len(self.forward),
            "storefront_skus": len(self.reverse),
            "relations": sum(len(r) for r in self.forward.values()),
        }


def build_mapping_index(records: list[SkuMappingRecord]) -> MappingIndex:
    """Build forward and reverse indices in one pass.

    A repeated (erp_code, storefront_sku) pair keeps its first position and
    takes the last multiplier.
    """
    index = MappingIndex()
    for rec in records:
        rel = MappingRelation(rec.erp_code, rec.storefront_sku, rec.multiplier)
        index.forward.setdefault(rec.erp_code, {})[rec.storefront_sku] = rel
        index.reverse[rec.storefront_sku] = rel
    return index
