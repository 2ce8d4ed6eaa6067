# backend/stockhub/services/sku_resolver.py
"""
SKU hierarchy resolver.

Decides which product rows are store variants of a main product. This is
the only place SKU-suffix and name heuristics live; callers load candidate
rows and hand them in, so the resolver itself never touches the database.

VARIANT SKU FORMS (for main SKU "BEV-001", store 6 "Main Store"):
- BEV-001-S6              canonical suffix
- BEV-001-MAINSTORE       store-name suffix
- BEV-001-POS-MAINSTORE   store-name suffix, only for stores with POS enabled

MATCHING RULES (ordered, first match wins, evaluated per candidate):
1. exact_sku     candidate SKU equals main SKU (case-insensitive)
2. canonical     candidate SKU equals <main>-S<candidate.store_id>
3. store_name    candidate SKU equals <main>-<NAME> or, with POS, <main>-POS-<NAME>
4. name          candidate name equals main name (case-insensitive)

A candidate must also be a live store row (store_id set, active, not
soft-deleted). Anything else is excluded, so "SHIRT-BLUE" never matches
"SHIRT".

KNOWN LIMITATION: rule 4 can merge unrelated products that share a display
name. It is kept to catch legacy rows with malformed SKUs.
"""
from __future__ import annotations

import re
from typing import Iterable, Mapping


RULE_EXACT_SKU = "exact_sku"
RULE_CANONICAL = "canonical"
RULE_STORE_NAME = "store_name"
RULE_NAME = "name"

_NON_ALNUM = re.compile(r"[^A-Z0-9]")
_CANONICAL_SUFFIX = re.compile(r"-S\d+$", re.IGNORECASE)


def sanitize_store_name(name: str | None) -> str:
    """Uppercase alphanumerics only: "Main Store #2" -> "MAINSTORE2"."""
    if not name:
        return ""
    return _NON_ALNUM.sub("", name.upper())


def _norm(value: str | None) -> str:
    return (value or "").strip().upper()


def canonical_variant_sku(main_sku: str, store_id: int) -> str:
    return f"{main_sku}-S{store_id}"


def compute_variant_sku(main_sku: str, store) -> str:
    """
    SKU for a new store variant.

    POS stores get <SKU>-POS-<NAME>, others <SKU>-<NAME>. When the store name
    has no usable characters the canonical <SKU>-S<id> form is used.
    """
    sanitized = sanitize_store_name(store.name)
    if not sanitized:
        return canonical_variant_sku(main_sku, store.id)
    if store.has_pos:
        return f"{main_sku}-POS-{sanitized}"
    return f"{main_sku}-{sanitized}"


def is_variant_candidate(candidate) -> bool:
    return (
        candidate.store_id is not None
        and bool(candidate.active)
        and candidate.deleted_at is None
    )


def _index_stores(stores) -> dict:
    if stores is None:
        return {}
    if isinstance(stores, Mapping):
        return dict(stores)
    return {s.id: s for s in stores}


def match_rule(main, candidate, store=None) -> str | None:
    """Return the first rule that links ``candidate`` to ``main``, or None."""
    main_sku = _norm(main.sku)
    cand_sku = _norm(candidate.sku)

    if main_sku and cand_sku:
        if cand_sku == main_sku:
            return RULE_EXACT_SKU

        if cand_sku == _norm(canonical_variant_sku(main_sku, candidate.store_id)):
            return RULE_CANONICAL

        sanitized = sanitize_store_name(store.name) if store is not None else ""
        if sanitized:
            if cand_sku == f"{main_sku}-{sanitized}":
                return RULE_STORE_NAME
            if store.has_pos and cand_sku == f"{main_sku}-POS-{sanitized}":
                return RULE_STORE_NAME

    main_name = _norm(main.name)
    if main_name and _norm(candidate.name) == main_name:
        return RULE_NAME

    return None


def match_variants(main, candidates: Iterable, stores=None) -> list[tuple[object, str]]:
    """
    Variants of ``main`` among ``candidates`` paired with the rule that matched.

    The main row itself is never returned, even if it shows up in candidates.
    """
    store_index = _index_stores(stores)
    matches = []
    for candidate in candidates:
        if candidate is main or (main.id is not None and candidate.id == main.id):
            continue
        if not is_variant_candidate(candidate):
            continue
        rule = match_rule(main, candidate, store_index.get(candidate.store_id))
        if rule is not None:
            matches.append((candidate, rule))
    return matches


def resolve_variants(main, candidates: Iterable, stores=None) -> set[int]:
    """Store ids that already hold a variant of ``main``."""
    return {candidate.store_id for candidate, _ in match_variants(main, candidates, stores)}


def base_sku(variant_sku: str | None, store=None) -> str | None:
    """
    Recover the main SKU from a variant SKU by stripping a known suffix.

    Checked in order: -POS-<NAME>, -<NAME> (both need the store), then -S<digits>.
    SKUs without a known suffix are returned unchanged (legacy rows that
    reuse the main SKU verbatim).
    """
    if not variant_sku:
        return variant_sku
    sku = variant_sku.strip()
    upper = sku.upper()

    sanitized = sanitize_store_name(store.name) if store is not None else ""
    if sanitized:
        for suffix in (f"-POS-{sanitized}", f"-{sanitized}"):
            if upper.endswith(suffix) and len(upper) > len(suffix):
                return sku[: -len(suffix)]

    stripped = _CANONICAL_SUFFIX.sub("", sku)
    if stripped:
        return stripped
    return sku


def is_canonical_variant_of(main_sku: str, candidate_sku: str | None) -> bool:
    """True for <main>-S<digits>; the narrow family used by destructive cascades."""
    if not main_sku or not candidate_sku:
        return False
    pattern = re.compile(re.escape(main_sku) + r"-S\d+", re.IGNORECASE)
    return pattern.fullmatch(candidate_sku.strip()) is not None
