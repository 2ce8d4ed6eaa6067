# backend/stockhub/services/deletion_service.py
"""
Soft-delete cascade.

RULES:
- A product row is never removed; deletion sets deleted_at and active=False.
- Deleting a main product with a SKU also soft-deletes every live
  <SKU>-S<digits> row in the same transaction. Only the canonical suffix
  family is used here, a narrower match than sku_resolver, because this
  path is destructive.
- Deleting a variant never touches its main product or sibling variants.
- Deleting an already-deleted product is a no-op (0 variants).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from flask import current_app

from ..actor import Actor
from ..errors import InventoryError, NotFound
from ..extensions import db
from ..models import Product
from . import sku_resolver
from .audit_service import audit_entry
from .concurrency import lock_for_update, run_in_transaction
from .mirror_service import enqueue_product
from .post_commit import run_post_commit
from stockhub.time_utils import utcnow


@dataclass
class BatchDeleteSummary:
    deleted: list[int] = field(default_factory=list)
    variants_deleted: int = 0
    not_found: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "deleted": list(self.deleted),
            "variants_deleted": self.variants_deleted,
            "not_found": list(self.not_found),
            "failed": {str(k): v for k, v in self.failed.items()},
        }


def _soft_delete(product: Product, now) -> None:
    product.deleted_at = now
    product.active = False


def _canonical_variants(main_sku: str) -> list[Product]:
    escaped = main_sku.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    rows = lock_for_update(
        db.session.query(Product).filter(
            Product.active.is_(True),
            Product.deleted_at.is_(None),
            Product.sku.ilike(f"{escaped}-S%", escape="\\"),
        )
    ).all()
    return [row for row in rows if sku_resolver.is_canonical_variant_of(main_sku, row.sku)]


def delete_product(product_id: int, actor: Actor) -> int:
    """
    Soft-delete one product and, for a main product, its canonical variants.

    Returns the number of variants deleted alongside it.
    """
    deleted_rows: list[Product] = []
    audits: list[dict] = []

    def _op():
        audits.clear()
        deleted_rows.clear()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        if product.deleted_at is not None:
            return 0

        now = utcnow()
        _soft_delete(product, now)
        deleted_rows.append(product)

        variants = []
        if product.is_main and product.sku and product.sku.strip():
            variants = [v for v in _canonical_variants(product.sku) if v.id != product.id]
            for variant in variants:
                _soft_delete(variant, now)
                deleted_rows.append(variant)

        for row in deleted_rows:
            enqueue_product(row)
            audits.append(audit_entry(
                "delete_product" if row is product else "cascade_delete_variant",
                row, actor,
                before={"quantity": row.quantity, "active": True},
                after={"quantity": row.quantity, "active": False},
            ))
        return len(variants)

    variants_deleted = run_in_transaction(_op)
    if deleted_rows:
        current_app.logger.info(
            "Soft-deleted product %s with %s variant(s)", product_id, variants_deleted,
        )
    run_post_commit(audits=audits)
    return variants_deleted


def batch_delete(product_ids: Iterable[int], actor: Actor) -> BatchDeleteSummary:
    """
    Apply delete_product per id, each in its own transaction.

    A failure on one id is recorded in the summary and the batch continues.
    """
    summary = BatchDeleteSummary()
    for product_id in product_ids:
        try:
            summary.variants_deleted += delete_product(product_id, actor)
            summary.deleted.append(product_id)
        except NotFound:
            summary.not_found.append(product_id)
        except InventoryError as exc:
            summary.failed[product_id] = exc.message
        except Exception as exc:
            current_app.logger.exception("Batch delete failed for product %s", product_id)
            summary.failed[product_id] = str(exc)
    return summary
