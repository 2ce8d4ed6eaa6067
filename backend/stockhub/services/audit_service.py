# backend/stockhub/services/audit_service.py
"""
Stock audit trail.

Audit entries are written to the mirror "stock_audits" collection after the
authoritative commit. A failing audit sink never rolls back the mutation it
describes: post_commit logs and drops the failure.
"""
from __future__ import annotations

import uuid
from typing import Optional

from ..actor import Actor
from ..errors import MirrorSyncFailed
from .mirror_service import COLLECTION_STOCK_AUDITS, get_mirror_store
from stockhub.time_utils import to_utc_z, utcnow


def audit_entry(
    action: str,
    product,
    actor: Actor,
    *,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    reference: Optional[str] = None,
) -> dict:
    """Snapshot the audit fields now, while the product row is still loaded."""
    return {
        "action": action,
        "product_id": str(product.id),
        "sku": product.sku,
        "product_name": product.name,
        "store_id": product.store_id,
        "before": dict(before or {}),
        "after": dict(after or {}),
        "reference": reference,
        "user_id": actor.user_id,
        "username": actor.username,
    }


def record_stock_audit(entry: dict) -> str:
    before = entry.get("before") or {}
    after = entry.get("after") or {}
    doc = {
        "action": entry.get("action", "update"),
        "product_id": entry.get("product_id"),
        "sku": entry.get("sku"),
        "product_name": entry.get("product_name"),
        "store_id": entry.get("store_id"),
        "quantity_before": before.get("quantity"),
        "quantity_after": after.get("quantity"),
        "reference": entry.get("reference"),
        "changed_by": entry.get("user_id"),
        "changed_name": entry.get("username"),
        "created_at": to_utc_z(utcnow()),
    }
    if doc["quantity_before"] is not None and doc["quantity_after"] is not None:
        doc["quantity_delta"] = int(doc["quantity_after"]) - int(doc["quantity_before"])

    doc_id = uuid.uuid4().hex
    try:
        get_mirror_store().upsert_doc(COLLECTION_STOCK_AUDITS, doc_id, doc)
    except Exception as exc:
        raise MirrorSyncFailed(f"Audit write failed: {exc}") from exc
    return doc_id


def list_stock_audits(product_id: Optional[int] = None) -> list[dict]:
    try:
        docs = [doc for _, doc in get_mirror_store().list_docs(COLLECTION_STOCK_AUDITS)]
    except Exception as exc:
        raise MirrorSyncFailed(f"Audit listing failed: {exc}") from exc
    if product_id is not None:
        docs = [d for d in docs if d.get("product_id") == str(product_id)]
    return sorted(docs, key=lambda d: d.get("created_at") or "", reverse=True)
