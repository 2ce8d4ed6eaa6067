# Overview: Append-only stock movement ledger.

from __future__ import annotations

from typing import Optional

from ..actor import Actor
from ..errors import InvalidInput, NotFound
from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_TYPES
"""
Stock Ledger Invariants (authoritative)

- One StockMovement row per quantity change of a product, written in the
  same DB transaction as the change.
- A cascade-triggered change to a main product gets its own row on the
  main product (reference "Cascading Update"), distinct from the variant row.
- quantity is a magnitude (>= 0); direction lives in movement_type.
- Rows are never updated or deleted.
"""

REFERENCE_STOCK_ADJUSTMENT = "Stock Adjustment"
REFERENCE_STOCK_COUNT = "Stock Count"
REFERENCE_CASCADE = "Cascading Update"
REFERENCE_STORE_ASSIGNMENT = "Store Assignment"
REFERENCE_WAREHOUSE_TRANSFER = "Warehouse Transfer"
REFERENCE_TRANSFER_CANCELLED = "Transfer Cancelled"
REFERENCE_RECONCILIATION = "Reconciliation"


def append_stock_movement(
    *,
    product: Product,
    movement_type: str,
    quantity: int,
    actor: Actor,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
) -> StockMovement:
    """
    Append one ledger row for ``product``.

    - No quantity logic here; callers change Product.quantity themselves.
    - store_id is copied from the product (NULL for main products).
    """
    if movement_type not in MOVEMENT_TYPES:
        raise InvalidInput(f"Unknown movement type {movement_type!r}")
    if quantity < 0:
        raise InvalidInput("Movement quantity must be a non-negative magnitude")

    movement = StockMovement(
        product_id=product.id,
        store_id=product.store_id,
        movement_type=movement_type,
        quantity=quantity,
        reference=reference,
        notes=notes,
        user_id=actor.user_id,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing
    return movement


def get_movement_history(product_id: int, limit: int = 200) -> list[StockMovement]:
    """Newest first."""
    if db.session.get(Product, product_id) is None:
        raise NotFound(f"Product {product_id} not found", product_id=product_id)

    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
