# backend/stockhub/services/post_commit.py
"""
Side effects that run strictly after an authoritative commit.

Order: mirror outbox -> audit sink -> cache invalidation -> alert evaluation.
Every step is best effort. Failures are logged here, at the call site, and
never change the result of the committed operation.
"""
from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..errors import MirrorSyncFailed
from .alert_service import evaluate_products
from .audit_service import record_stock_audit
from .cache_service import invalidate_inventory_caches
from .mirror_service import dispatch_outbox


def run_post_commit(*, products: Iterable = (), audits: Iterable[dict] = ()) -> None:
    logger = current_app.logger

    dispatch_outbox()

    for entry in audits:
        try:
            record_stock_audit(entry)
        except MirrorSyncFailed as exc:
            logger.warning("Audit log failed for product %s: %s", entry.get("product_id"), exc)

    invalidate_inventory_caches()

    live = [p for p in products if p is not None and p.is_live]
    if live:
        evaluate_products(live)
