"""
test_mapping_service.py — Tests for the ERP code <-> storefront SKU index

Called by: pytest
Depends on: stocksync/services/mapping_service.py, stocksync/schemas/erp.py
"""

from stocksync.schemas.erp import SkuMappingRecord
from stocksync.services.mapping_service import build_mapping_index


def _rec(code, sku, mult=1):
    return SkuMappingRecord(erp_code=code, storefront_sku=sku, multiplier=mult)


def test_forward_fans_out_to_all_skus():
    index = build_mapping_index([_rec("A1", "W1"), _rec("A1", "W2"), _rec("B2", "W3")])
    assert index.storefront_skus("A1") == ["W1", "W2"]
    assert index.storefront_skus("B2") == ["W3"]


def test_unmapped_code_falls_back_to_identity():
    index = build_mapping_index([_rec("A1", "W1")])
    assert index.storefront_skus("Z9") == ["Z9"]
    rels = index.relations("Z9")
    assert len(rels) == 1
    assert rels[0].storefront_sku == "Z9"
    assert rels[0].multiplier == 1


def test_reverse_lookup():
    index = build_mapping_index([_rec("A1", "W1"), _rec("A1", "W2")])
    assert index.erp_code_for("W2") == "A1"
    assert index.erp_code_for("nope") is None


def test_duplicate_pair_last_multiplier_wins():
    index = build_mapping_index([_rec("A1", "W1", 2), _rec("A1", "W2"), _rec("A1", "W1", 6)])
    assert index.storefront_skus("A1") == ["W1", "W2"]
    w1 = [r for r in index.relations("A1") if r.storefront_sku == "W1"][0]
    assert w1.multiplier == 6
    assert index.reverse["W1"].multiplier == 6


def test_stats():
    index = build_mapping_index([_rec("A1", "W1"), _rec("A1", "W2"), _rec("B2", "W3")])
    assert index.stats() == {"erp_codes": 2, "storefront_skus": 3, "relations": 3}


def test_record_from_biz_object_skips_blank_and_defaults_multiplier():
    assert SkuMappingRecord.from_biz_object({"F0000001": "", "F0000002": "A1"}) is None
    assert SkuMappingRecord.from_biz_object({"F0000001": "W1", "F0000002": " "}) is None
    rec = SkuMappingRecord.from_biz_object({"F0000001": " W1 ", "F0000002": "A1", "F0000003": ""})
    assert rec.storefront_sku == "W1"
    assert rec.erp_code == "A1"
    assert rec.multiplier == 1
    rec = SkuMappingRecord.from_biz_object({"F0000001": "W1", "F0000002": "A1", "F0000003": "3"})
    assert rec.multiplier == 3
