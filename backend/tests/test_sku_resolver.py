"""
SKU hierarchy resolver tests.

The resolver is pure, so plain namespaces stand in for Product / Store rows.
"""
from types import SimpleNamespace

import pytest

from stockhub.services import sku_resolver
from stockhub.services.sku_resolver import (
    RULE_CANONICAL,
    RULE_EXACT_SKU,
    RULE_NAME,
    RULE_STORE_NAME,
)


def _store(id=6, name="Main Store", has_pos=False):
    return SimpleNamespace(id=id, name=name, has_pos=has_pos)


def _product(id, sku, name="Coca-Cola 330ml", store_id=None, active=True, deleted_at=None):
    return SimpleNamespace(id=id, sku=sku, name=name, store_id=store_id, active=active, deleted_at=deleted_at)


MAIN = _product(1, "BEV-001")


@pytest.mark.parametrize("sku,has_pos,expected", [
    ("BEV-001-S6", False, RULE_CANONICAL),
    ("bev-001-s6", False, RULE_CANONICAL),
    ("BEV-001-MAINSTORE", False, RULE_STORE_NAME),
    ("BEV-001-POS-MAINSTORE", True, RULE_STORE_NAME),
    ("BEV-001-POS-MAINSTORE", False, None),
    ("BEVERAGE-001", False, None),
    ("BEV-001-S7", False, None),
    ("BEV-001", False, RULE_EXACT_SKU),
])
def test_resolver_table(sku, has_pos, expected):
    store = _store(has_pos=has_pos)
    candidate = _product(2, sku, name="Something else", store_id=6)
    assert sku_resolver.match_rule(MAIN, candidate, store) == expected


def test_name_fallback_matches_unrelated_sku():
    candidate = _product(2, "LEGACY-XYZ", name="coca-cola 330ml", store_id=6)
    assert sku_resolver.match_rule(MAIN, candidate, _store()) == RULE_NAME


def test_similar_prefix_does_not_match():
    main = _product(1, "SHIRT", name="Shirt")
    candidate = _product(2, "SHIRT-BLUE", name="Blue shirt", store_id=6)
    assert sku_resolver.match_rule(main, candidate, _store()) is None


def test_match_variants_skips_main_dead_and_unassigned_rows():
    candidates = [
        MAIN,
        _product(2, "BEV-001-S6", store_id=6),
        _product(3, "BEV-001-S7", store_id=7, active=False),
        _product(4, "BEV-001-S8", store_id=8, deleted_at="2026-01-01"),
        _product(5, "BEV-001-X", store_id=None),
    ]
    matches = sku_resolver.match_variants(MAIN, candidates, [_store()])
    assert [(c.id, rule) for c, rule in matches] == [(2, RULE_CANONICAL)]


def test_resolve_variants_returns_store_ids():
    stores = {6: _store(), 9: _store(id=9, name="Harbour", has_pos=True)}
    candidates = [
        _product(2, "BEV-001-S6", name="x", store_id=6),
        _product(3, "BEV-001-POS-HARBOUR", name="y", store_id=9),
    ]
    assert sku_resolver.resolve_variants(MAIN, candidates, stores) == {6, 9}


@pytest.mark.parametrize("name,has_pos,expected", [
    ("Main Store", False, "BEV-001-MAINSTORE"),
    ("Main Store #2", True, "BEV-001-POS-MAINSTORE2"),
    ("***", False, "BEV-001-S6"),
])
def test_compute_variant_sku(name, has_pos, expected):
    assert sku_resolver.compute_variant_sku("BEV-001", _store(name=name, has_pos=has_pos)) == expected


@pytest.mark.parametrize("variant_sku,store,expected", [
    ("BEV-001-S6", None, "BEV-001"),
    ("BEV-001-MAINSTORE", _store(), "BEV-001"),
    ("BEV-001-POS-MAINSTORE", _store(has_pos=True), "BEV-001"),
    ("BEV-001", _store(), "BEV-001"),
])
def test_base_sku(variant_sku, store, expected):
    assert sku_resolver.base_sku(variant_sku, store) == expected


def test_canonical_family_is_narrow():
    assert sku_resolver.is_canonical_variant_of("CARE-003", "CARE-003-S6")
    assert sku_resolver.is_canonical_variant_of("CARE-003", "care-003-s12")
    assert not sku_resolver.is_canonical_variant_of("CARE-003", "CARE-003-MAINSTORE")
    assert not sku_resolver.is_canonical_variant_of("CARE-003", "CARE-003-S6X")
    assert not sku_resolver.is_canonical_variant_of("", "CARE-003-S6")
