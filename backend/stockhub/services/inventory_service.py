# Overview: Stock ledger operations with main-product cascade; encapsulates business logic and database work.

# backend/stockhub/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from flask import current_app
from sqlalchemy import func, or_

from ..actor import Actor
from ..errors import (
    DuplicateAssignment,
    InsufficientStock,
    InvalidInput,
    NoOpAdjustment,
    NotFound,
    require_int,
)
from ..extensions import db
from ..models import Product, StockMovement, Store
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from . import sku_resolver
from .alert_service import evaluate_products
from .audit_service import audit_entry
from .concurrency import lock_for_update, run_in_transaction, sku_lock
from .ledger_service import (
    REFERENCE_CASCADE,
    REFERENCE_RECONCILIATION,
    REFERENCE_STOCK_ADJUSTMENT,
    REFERENCE_STOCK_COUNT,
    REFERENCE_STORE_ASSIGNMENT,
    append_stock_movement,
)
from .mirror_service import COLLECTION_STOCK_MOVEMENTS, enqueue_entity, enqueue_product
from .post_commit import run_post_commit
"""
Inventory Hierarchy Invariants (authoritative)

Hierarchy:
- A main product (store_id NULL) carries the aggregate quantity of its store
  variants. Variants are found only through services.sku_resolver.
- After a variant quantity changes, the main quantity is recomputed as the
  sum of ALL live variants resolved for its base SKU, not old + delta, so any
  earlier drift is corrected on the next write.

Transactions:
- Each public mutation is one DB transaction (run_in_transaction); any error
  rolls back every quantity change and ledger row.
- Cascade recomputation is serialized per base SKU (sku_lock) and the main
  row is locked FOR UPDATE where the database supports it.
- Mirror sync, audit, cache invalidation and alert evaluation happen only
  after commit (post_commit) and can never undo the committed change.
"""


@dataclass
class AdjustResult:
    product: Product
    movement: StockMovement
    main_product: Optional[Product] = None
    cascade_movement: Optional[StockMovement] = None

    @property
    def new_quantity(self) -> int:
        return self.product.quantity

    def to_dict(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "movement": self.movement.to_dict(),
            "main_product": self.main_product.to_dict() if self.main_product else None,
            "cascade_movement": self.cascade_movement.to_dict() if self.cascade_movement else None,
        }


@dataclass
class AssignResult:
    variant: Product
    main_product: Product
    movements: list[StockMovement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "variant": self.variant.to_dict(),
            "main_product": self.main_product.to_dict(),
            "movements": [m.to_dict() for m in self.movements],
        }


# ---------------------------------------------------------------------------
# Hierarchy lookups (read-only)
# ---------------------------------------------------------------------------

def _like_prefix(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"{escaped}%"


def _get_live_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or product.deleted_at is not None:
        raise NotFound(f"Product {product_id} not found", product_id=product_id)
    return product


def find_main_product(base_sku: Optional[str], *, lock: bool = False) -> Optional[Product]:
    """Live main product whose SKU equals ``base_sku`` (case-insensitive)."""
    if not base_sku:
        return None
    query = (
        db.session.query(Product)
        .filter(
            Product.store_id.is_(None),
            Product.deleted_at.is_(None),
            func.upper(Product.sku) == base_sku.strip().upper(),
        )
        .order_by(Product.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def load_variant_candidates(main: Product) -> list[Product]:
    """
    Live store rows that could belong to ``main``.

    A cheap superset (SKU prefix or same name); sku_resolver decides.
    """
    conditions = []
    if main.sku:
        conditions.append(func.upper(Product.sku).like(_like_prefix(main.sku.strip().upper()), escape="\\"))
    if main.name:
        conditions.append(func.lower(Product.name) == main.name.strip().lower())
    if not conditions:
        return []

    return (
        db.session.query(Product)
        .filter(
            Product.store_id.isnot(None),
            Product.active.is_(True),
            Product.deleted_at.is_(None),
            or_(*conditions),
        )
        .order_by(Product.id.asc())
        .all()
    )


def _stores_for(products) -> dict[int, Store]:
    store_ids = {p.store_id for p in products if p.store_id is not None}
    if not store_ids:
        return {}
    return {s.id: s for s in db.session.query(Store).filter(Store.id.in_(store_ids)).all()}


def find_variants(main: Product) -> list[Product]:
    candidates = load_variant_candidates(main)
    matches = sku_resolver.match_variants(main, candidates, _stores_for(candidates))
    return [candidate for candidate, _ in matches]


def find_main_for_variant(variant: Product, *, lock: bool = False) -> Optional[Product]:
    store = db.session.get(Store, variant.store_id) if variant.store_id is not None else None
    return find_main_product(sku_resolver.base_sku(variant.sku, store), lock=lock)


def get_assigned_stores(product_id: int) -> list[int]:
    """Store ids that already hold a variant of the product's main product."""
    product = _get_live_product(product_id)
    main = product if product.is_main else find_main_for_variant(product)
    if main is None:
        return [product.store_id]

    candidates = load_variant_candidates(main)
    return sorted(sku_resolver.resolve_variants(main, candidates, _stores_for(candidates)))


def _lock_key(product: Product) -> Optional[str]:
    if product.is_main:
        return product.sku
    store = db.session.get(Store, product.store_id)
    return sku_resolver.base_sku(product.sku, store)


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

def _cascade_to_main(variant: Product, actor: Actor) -> tuple[Optional[Product], Optional[StockMovement]]:
    """
    Recompute the main product of ``variant`` from the sum of its live variants.

    Returns (main, movement); movement is None when the total did not change.
    A variant whose main product cannot be found is left alone.
    """
    main = find_main_for_variant(variant, lock=True)
    if main is None:
        current_app.logger.info(
            "No main product for variant %s (sku=%s); cascade skipped", variant.id, variant.sku,
        )
        return None, None

    total = sum(int(v.quantity or 0) for v in find_variants(main))
    diff = total - int(main.quantity or 0)
    if diff == 0:
        return main, None

    main.quantity = total
    movement = append_stock_movement(
        product=main,
        movement_type=MOVEMENT_IN if diff > 0 else MOVEMENT_OUT,
        quantity=abs(diff),
        actor=actor,
        reference=REFERENCE_CASCADE,
        notes=f"Auto-updated from store variant adjustment (Store variant SKU: {variant.sku})",
    )
    return main, movement


def _apply_change(
    *,
    product_id: int,
    actor: Actor,
    compute,
    audit_action: str,
) -> AdjustResult:
    """
    Shared body of adjust / set_quantity.

    ``compute(product)`` validates and returns (new_quantity, movement_type,
    magnitude, reference, notes).
    """
    product = _get_live_product(product_id)
    key = _lock_key(product)
    audits: list[dict] = []

    def _op():
        audits.clear()
        locked = _get_live_product(product_id, lock=True)
        old_qty = int(locked.quantity or 0)
        new_qty, movement_type, magnitude, reference, notes = compute(locked)

        locked.quantity = new_qty
        movement = append_stock_movement(
            product=locked,
            movement_type=movement_type,
            quantity=magnitude,
            actor=actor,
            reference=reference,
            notes=notes,
        )
        enqueue_product(locked)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, movement)
        audits.append(audit_entry(
            audit_action, locked, actor,
            before={"quantity": old_qty}, after={"quantity": new_qty}, reference=reference,
        ))

        main, cascade_movement = (None, None)
        if locked.is_variant:
            main, cascade_movement = _cascade_to_main(locked, actor)
            if cascade_movement is not None:
                main_old = main.quantity - _signed(cascade_movement)
                enqueue_product(main)
                enqueue_entity(COLLECTION_STOCK_MOVEMENTS, cascade_movement)
                audits.append(audit_entry(
                    "cascade_update", main, actor,
                    before={"quantity": main_old}, after={"quantity": main.quantity},
                    reference=REFERENCE_CASCADE,
                ))

        return AdjustResult(
            product=locked,
            movement=movement,
            main_product=main,
            cascade_movement=cascade_movement,
        )

    with sku_lock(key):
        result = run_in_transaction(_op)

    run_post_commit(products=[result.product, result.main_product], audits=audits)
    return result


def _signed(movement: StockMovement) -> int:
    return movement.quantity if movement.movement_type == MOVEMENT_IN else -movement.quantity


# ---------------------------------------------------------------------------
# Public mutations
# ---------------------------------------------------------------------------

def adjust(
    product_id: int,
    delta,
    reason: Optional[str],
    actor: Actor,
    *,
    notes: Optional[str] = None,
) -> AdjustResult:
    """
    Add (delta > 0) or remove (delta < 0) stock on one product row.

    Writes an in/out movement; for a store variant the main product is
    recomputed and gets its own "Cascading Update" movement.

    Raises:
        InvalidInput / NoOpAdjustment: non-integer or zero delta
        NotFound: product missing or soft-deleted
        InsufficientStock: result would be negative
    """
    delta = require_int(delta, "delta")
    if delta == 0:
        raise NoOpAdjustment("Adjustment quantity must not be zero", product_id=product_id)

    def compute(product: Product):
        current = int(product.quantity or 0)
        new_qty = current + delta
        if new_qty < 0:
            raise InsufficientStock(
                f"Cannot subtract more than current quantity ({current})",
                product_id=product.id,
                available=current,
                requested=-delta,
            )
        return (
            new_qty,
            MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
            abs(delta),
            reason or REFERENCE_STOCK_ADJUSTMENT,
            notes or "Manual stock adjustment",
        )

    return _apply_change(product_id=product_id, actor=actor, compute=compute, audit_action="adjust_stock")


def set_quantity(
    product_id: int,
    new_quantity,
    reason: Optional[str],
    actor: Actor,
    *,
    notes: Optional[str] = None,
) -> AdjustResult:
    """Physical-count style adjustment: set the quantity outright."""
    new_quantity = require_int(new_quantity, "quantity", minimum=0)

    def compute(product: Product):
        current = int(product.quantity or 0)
        diff = new_quantity - current
        if diff == 0:
            raise NoOpAdjustment(
                f"Quantity is already {current}", product_id=product.id,
            )
        return (
            new_quantity,
            MOVEMENT_IN if diff > 0 else MOVEMENT_OUT,
            abs(diff),
            reason or REFERENCE_STOCK_COUNT,
            notes or f"Quantity set from {current} to {new_quantity}",
        )

    return _apply_change(product_id=product_id, actor=actor, compute=compute, audit_action="set_stock")


def assign_to_store(
    main_product_id: int,
    store_id: int,
    quantity,
    actor: Actor,
) -> AssignResult:
    """
    Create a store variant of a main product and move ``quantity`` into it.

    quantity 0 creates an empty variant record. Raises DuplicateAssignment
    when the resolver already finds a variant for the store.
    """
    quantity = require_int(quantity, "quantity", minimum=0)
    store_id = require_int(store_id, "store_id", minimum=1)

    pre = _get_live_product(main_product_id)
    if not pre.is_main:
        raise InvalidInput(f"Product {main_product_id} is a store variant, not a main product")
    if not pre.sku:
        raise InvalidInput(f"Main product {main_product_id} has no SKU")
    audits: list[dict] = []

    def _op():
        audits.clear()
        main = _get_live_product(main_product_id, lock=True)
        store = db.session.get(Store, store_id)
        if store is None or not store.active:
            raise NotFound(f"Store {store_id} not found", store_id=store_id)

        if quantity > int(main.quantity or 0):
            raise InsufficientStock(
                f"Cannot assign more than available quantity ({main.quantity})",
                product_id=main.id,
                available=main.quantity,
                requested=quantity,
            )

        candidates = load_variant_candidates(main)
        if store_id in sku_resolver.resolve_variants(main, candidates, _stores_for(candidates)):
            raise DuplicateAssignment(
                f"Product already assigned to store {store.name}",
                product_id=main.id,
                store_id=store_id,
            )

        variant_sku = sku_resolver.compute_variant_sku(main.sku, store)
        variant = Product(
            name=main.name,
            sku=variant_sku,
            barcode=main.barcode,
            description=main.description,
            category=main.category,
            unit=main.unit,
            cost_price=main.cost_price,
            price=main.price,
            quantity=quantity,
            reorder_level=main.reorder_level,
            expiry_date=main.expiry_date,
            store_id=store_id,
            active=True,
        )
        db.session.add(variant)
        db.session.flush()

        main_old = int(main.quantity or 0)
        if quantity > 0:
            main.quantity = main_old - quantity

        out_movement = append_stock_movement(
            product=main,
            movement_type=MOVEMENT_OUT,
            quantity=quantity,
            actor=actor,
            reference=REFERENCE_STORE_ASSIGNMENT,
            notes=f"Assigned to {store.name} (Store variant created: {variant_sku})",
        )
        in_movement = append_stock_movement(
            product=variant,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            actor=actor,
            reference=REFERENCE_STORE_ASSIGNMENT,
            notes=f"Assigned from main product (ID: {main.id})",
        )

        enqueue_product(variant)
        enqueue_product(main)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, out_movement)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, in_movement)
        audits.append(audit_entry(
            "assign_to_store", main, actor,
            before={"quantity": main_old}, after={"quantity": main.quantity},
            reference=REFERENCE_STORE_ASSIGNMENT,
        ))
        audits.append(audit_entry(
            "create_store_variant", variant, actor,
            before={"quantity": 0}, after={"quantity": quantity},
            reference=REFERENCE_STORE_ASSIGNMENT,
        ))

        return AssignResult(variant=variant, main_product=main, movements=[out_movement, in_movement])

    with sku_lock(pre.sku):
        result = run_in_transaction(_op)

    run_post_commit(products=[result.main_product, result.variant], audits=audits)
    return result


# ---------------------------------------------------------------------------
# Listing and reconciliation
# ---------------------------------------------------------------------------

def list_products(
    *,
    store_id: Optional[int] = None,
    main_only: bool = False,
    include_deleted: bool = False,
    evaluate_alerts: bool = True,
) -> list[Product]:
    """
    Product listing. Doubles as the read-path alert trigger: every listed
    live product is evaluated.
    """
    query = db.session.query(Product)
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)
    elif main_only:
        query = query.filter(Product.store_id.is_(None))
    if not include_deleted:
        query = query.filter(Product.deleted_at.is_(None))

    products = query.order_by(Product.sku.asc(), Product.id.asc()).all()
    if evaluate_alerts:
        evaluate_products([p for p in products if p.is_live])
    return products


def check_hierarchy() -> list[dict]:
    """
    Main products whose quantity differs from the sum of their live variants.

    Main products without any variant are not reported.
    """
    mismatches = []
    mains = (
        db.session.query(Product)
        .filter(Product.store_id.is_(None), Product.deleted_at.is_(None))
        .order_by(Product.sku.asc(), Product.id.asc())
        .all()
    )
    for main in mains:
        variants = find_variants(main)
        if not variants:
            continue
        total = sum(int(v.quantity or 0) for v in variants)
        if total != int(main.quantity or 0):
            mismatches.append({
                "main_product_id": main.id,
                "sku": main.sku,
                "quantity": main.quantity,
                "variant_total": total,
                "variant_ids": [v.id for v in variants],
            })
    return mismatches


def reconcile_main_quantities(actor: Actor, *, dry_run: bool = False) -> list[dict]:
    """Correct every mismatch reported by check_hierarchy, one transaction per main product."""
    mismatches = check_hierarchy()
    if dry_run:
        return mismatches

    fixed = []
    for mismatch in mismatches:
        main_id = mismatch["main_product_id"]
        audits: list[dict] = []

        def _op(main_id=main_id, audits=audits):
            audits.clear()
            main = _get_live_product(main_id, lock=True)
            total = sum(int(v.quantity or 0) for v in find_variants(main))
            old = int(main.quantity or 0)
            if total == old:
                return None
            main.quantity = total
            movement = append_stock_movement(
                product=main,
                movement_type=MOVEMENT_IN if total > old else MOVEMENT_OUT,
                quantity=abs(total - old),
                actor=actor,
                reference=REFERENCE_RECONCILIATION,
                notes=f"Main quantity recomputed from store variants ({old} -> {total})",
            )
            enqueue_product(main)
            enqueue_entity(COLLECTION_STOCK_MOVEMENTS, movement)
            audits.append(audit_entry(
                "reconcile_main_quantity", main, actor,
                before={"quantity": old}, after={"quantity": total},
                reference=REFERENCE_RECONCILIATION,
            ))
            return main

        with sku_lock(mismatch["sku"]):
            main = run_in_transaction(_op)
        if main is None:
            continue
        run_post_commit(products=[main], audits=audits)
        fixed.append({**mismatch, "quantity": main.quantity})
    return fixed
