# backend/stockhub/services/transfer_service.py
"""
Warehouse -> store transfer workflow.

WHY: Store stock arrives physically after it leaves the warehouse. The
warehouse (main product) quantity is reserved at initiation; the store
variant is only credited when receipt is confirmed.

LIFECYCLE:
1. pending: warehouse decremented, "transfer" movement on the source
2. completed: store variant incremented, "in" movement on the destination
3. cancelled: reservation returned to the warehouse, "in" movement on the source

Each transition is one transaction. completed / cancelled are terminal;
confirming or cancelling anything else raises InvalidState and changes
nothing.

NOTE: transfer transitions move stock between the warehouse row and one
store row without running the variant cascade. The main quantity is
brought back to the sum of its variants by the next cascade or by
``inventory reconcile``.
"""
from __future__ import annotations

from typing import Optional

from ..actor import Actor
from ..errors import InsufficientStock, InvalidInput, InvalidState, NotFound, require_int
from ..extensions import db
from ..models import InventoryTransfer, Product
from ..models.documents import (
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_PENDING,
)
from ..models.inventory import MOVEMENT_IN, MOVEMENT_TRANSFER
from .audit_service import audit_entry
from .concurrency import lock_for_update, run_in_transaction, sku_lock
from .inventory_service import find_main_for_variant
from .ledger_service import (
    REFERENCE_TRANSFER_CANCELLED,
    REFERENCE_WAREHOUSE_TRANSFER,
    append_stock_movement,
)
from .mirror_service import (
    COLLECTION_STOCK_MOVEMENTS,
    COLLECTION_TRANSFERS,
    enqueue_entity,
    enqueue_product,
)
from .post_commit import run_post_commit
from stockhub.time_utils import utcnow


def _lock_product(product_id: int) -> Optional[Product]:
    return lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()


def _lock_transfer(transfer_id: int) -> InventoryTransfer:
    transfer = lock_for_update(
        db.session.query(InventoryTransfer).filter_by(id=transfer_id)
    ).first()
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found", transfer_id=transfer_id)
    return transfer


def _require_pending(transfer: InventoryTransfer, action: str) -> None:
    if not transfer.is_pending:
        raise InvalidState(
            f"Cannot {action} transfer {transfer.id} in status {transfer.status}",
            transfer_id=transfer.id,
            status=transfer.status,
        )


def get_transfer(transfer_id: int) -> InventoryTransfer:
    transfer = db.session.get(InventoryTransfer, transfer_id)
    if transfer is None:
        raise NotFound(f"Transfer {transfer_id} not found", transfer_id=transfer_id)
    return transfer


def list_transfers(*, status: Optional[str] = None, store_id: Optional[int] = None) -> list[InventoryTransfer]:
    query = db.session.query(InventoryTransfer)
    if status:
        query = query.filter(InventoryTransfer.status == status)
    if store_id is not None:
        query = query.filter(InventoryTransfer.store_id == store_id)
    return query.order_by(InventoryTransfer.created_at.desc(), InventoryTransfer.id.desc()).all()


def initiate_transfer(dest_product_id: int, quantity, actor: Actor) -> InventoryTransfer:
    """
    Reserve warehouse stock for a store variant (status: pending).

    Raises:
        InvalidInput: quantity not a positive integer, or destination is a main product
        NotFound: destination missing or inactive, or no warehouse counterpart
        InsufficientStock: warehouse quantity below the requested amount
    """
    quantity = require_int(quantity, "quantity", minimum=1)

    dest = db.session.get(Product, dest_product_id)
    if dest is None or not dest.is_live:
        raise NotFound(f"Product {dest_product_id} not found", product_id=dest_product_id)
    if not dest.is_variant:
        raise InvalidInput(f"Transfer destination {dest_product_id} must be a store variant")
    pre_main = find_main_for_variant(dest)
    if pre_main is None:
        raise NotFound(
            f"No warehouse product found for store variant {dest.sku}",
            product_id=dest_product_id,
        )

    audits: list[dict] = []

    def _op():
        audits.clear()
        source = find_main_for_variant(dest, lock=True)
        if source is None:
            raise NotFound(f"No warehouse product found for store variant {dest.sku}")

        available = int(source.quantity or 0)
        if available < quantity:
            raise InsufficientStock(
                f"Insufficient warehouse stock ({available}) for transfer of {quantity}",
                product_id=source.id,
                available=available,
                requested=quantity,
            )

        source.quantity = available - quantity
        transfer = InventoryTransfer(
            source_product_id=source.id,
            dest_product_id=dest.id,
            store_id=dest.store_id,
            quantity=quantity,
            status=TRANSFER_STATUS_PENDING,
            created_by=actor.user_id,
        )
        db.session.add(transfer)
        db.session.flush()

        movement = append_stock_movement(
            product=source,
            movement_type=MOVEMENT_TRANSFER,
            quantity=quantity,
            actor=actor,
            reference=REFERENCE_WAREHOUSE_TRANSFER,
            notes=f"Transfer #{transfer.id} to store variant {dest.sku}",
        )

        enqueue_product(source)
        enqueue_entity(COLLECTION_TRANSFERS, transfer)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, movement)
        audits.append(audit_entry(
            "initiate_transfer", source, actor,
            before={"quantity": available}, after={"quantity": source.quantity},
            reference=REFERENCE_WAREHOUSE_TRANSFER,
        ))
        return transfer

    with sku_lock(pre_main.sku):
        transfer = run_in_transaction(_op)

    run_post_commit(products=[transfer.source_product], audits=audits)
    return transfer


def confirm_transfer(transfer_id: int, actor: Actor) -> InventoryTransfer:
    """Receive a pending transfer at the store: pending -> completed."""
    audits: list[dict] = []

    def _op():
        audits.clear()
        transfer = _lock_transfer(transfer_id)
        _require_pending(transfer, "confirm")

        dest = _lock_product(transfer.dest_product_id)
        if dest is None or not dest.is_live:
            raise NotFound(
                f"Destination product {transfer.dest_product_id} not found",
                transfer_id=transfer.id,
            )

        before = int(dest.quantity or 0)
        dest.quantity = before + transfer.quantity
        transfer.status = TRANSFER_STATUS_COMPLETED
        transfer.received_at = utcnow()
        transfer.received_by = actor.user_id

        movement = append_stock_movement(
            product=dest,
            movement_type=MOVEMENT_IN,
            quantity=transfer.quantity,
            actor=actor,
            reference=REFERENCE_WAREHOUSE_TRANSFER,
            notes=f"Received transfer #{transfer.id}",
        )

        enqueue_product(dest)
        enqueue_entity(COLLECTION_TRANSFERS, transfer)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, movement)
        audits.append(audit_entry(
            "confirm_transfer", dest, actor,
            before={"quantity": before}, after={"quantity": dest.quantity},
            reference=REFERENCE_WAREHOUSE_TRANSFER,
        ))
        return transfer

    transfer = run_in_transaction(_op)
    run_post_commit(products=[transfer.dest_product], audits=audits)
    return transfer


def cancel_transfer(transfer_id: int, actor: Actor, reason: Optional[str] = None) -> InventoryTransfer:
    """Return the reservation to the warehouse: pending -> cancelled."""
    audits: list[dict] = []

    def _op():
        audits.clear()
        transfer = _lock_transfer(transfer_id)
        _require_pending(transfer, "cancel")

        source = _lock_product(transfer.source_product_id)
        if source is None:
            raise NotFound(
                f"Source product {transfer.source_product_id} not found",
                transfer_id=transfer.id,
            )

        before = int(source.quantity or 0)
        source.quantity = before + transfer.quantity
        transfer.status = TRANSFER_STATUS_CANCELLED

        movement = append_stock_movement(
            product=source,
            movement_type=MOVEMENT_IN,
            quantity=transfer.quantity,
            actor=actor,
            reference=REFERENCE_TRANSFER_CANCELLED,
            notes=reason or f"Cancelled transfer #{transfer.id}",
        )

        enqueue_product(source)
        enqueue_entity(COLLECTION_TRANSFERS, transfer)
        enqueue_entity(COLLECTION_STOCK_MOVEMENTS, movement)
        audits.append(audit_entry(
            "cancel_transfer", source, actor,
            before={"quantity": before}, after={"quantity": source.quantity},
            reference=REFERENCE_TRANSFER_CANCELLED,
        ))
        return transfer

    transfer = run_in_transaction(_op)
    run_post_commit(products=[transfer.source_product], audits=audits)
    return transfer
