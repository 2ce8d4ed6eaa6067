"""
Warehouse -> store transfer workflow tests.
"""
import pytest

from stockhub.errors import InsufficientStock, InvalidInput, InvalidState, NotFound
from stockhub.extensions import db
from stockhub.models import InventoryTransfer, Product, StockMovement
from stockhub.services import transfer_service


def _qty(product_id):
    return db.session.get(Product, product_id).quantity


def _movements(product_id):
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.asc())
        .all()
    )


@pytest.fixture
def warehouse_pair(db_session, make_product, store6):
    main = make_product("WH-001", quantity=50)
    variant = make_product("WH-001-S6", quantity=2, store=store6)
    return main.id, variant.id


def test_initiate_reserves_warehouse_stock(db_session, warehouse_pair, actor):
    main_id, variant_id = warehouse_pair

    transfer = transfer_service.initiate_transfer(variant_id, 10, actor)

    assert transfer.status == "pending"
    assert transfer.source_product_id == main_id
    assert transfer.dest_product_id == variant_id
    assert transfer.store_id == 6
    assert transfer.created_by == 7
    assert _qty(main_id) == 40
    assert _qty(variant_id) == 2
    movement = _movements(main_id)[-1]
    assert (movement.movement_type, movement.quantity, movement.reference) == ("transfer", 10, "Warehouse Transfer")


def test_initiate_then_confirm(db_session, warehouse_pair, actor):
    main_id, variant_id = warehouse_pair
    transfer_id = transfer_service.initiate_transfer(variant_id, 10, actor).id

    confirmed = transfer_service.confirm_transfer(transfer_id, actor)

    assert confirmed.status == "completed"
    assert confirmed.received_by == 7
    assert confirmed.received_at is not None
    assert _qty(main_id) == 40
    assert _qty(variant_id) == 12
    movement = _movements(variant_id)[-1]
    assert (movement.movement_type, movement.quantity) == ("in", 10)


def test_confirm_twice_is_invalid_state_and_mutates_nothing(db_session, warehouse_pair, actor):
    main_id, variant_id = warehouse_pair
    transfer_id = transfer_service.initiate_transfer(variant_id, 10, actor).id
    transfer_service.confirm_transfer(transfer_id, actor)
    movement_count = db_session.query(StockMovement).count()

    with pytest.raises(InvalidState):
        transfer_service.confirm_transfer(transfer_id, actor)
    with pytest.raises(InvalidState):
        transfer_service.cancel_transfer(transfer_id, actor)

    assert _qty(main_id) == 40
    assert _qty(variant_id) == 12
    assert db_session.query(StockMovement).count() == movement_count
    assert transfer_service.get_transfer(transfer_id).status == "completed"


def test_initiate_then_cancel_restores_source(db_session, warehouse_pair, actor):
    main_id, variant_id = warehouse_pair
    transfer_id = transfer_service.initiate_transfer(variant_id, 10, actor).id

    cancelled = transfer_service.cancel_transfer(transfer_id, actor, reason="Truck unavailable")

    assert cancelled.status == "cancelled"
    assert _qty(main_id) == 50
    assert _qty(variant_id) == 2
    movement = _movements(main_id)[-1]
    assert (movement.movement_type, movement.quantity, movement.reference) == ("in", 10, "Transfer Cancelled")
    assert movement.notes == "Truck unavailable"

    with pytest.raises(InvalidState):
        transfer_service.confirm_transfer(transfer_id, actor)


def test_initiate_more_than_warehouse_has(db_session, warehouse_pair, actor):
    main_id, variant_id = warehouse_pair

    with pytest.raises(InsufficientStock):
        transfer_service.initiate_transfer(variant_id, 51, actor)

    assert _qty(main_id) == 50
    assert db_session.query(InventoryTransfer).count() == 0


def test_initiate_validation(db_session, warehouse_pair, make_product, store6, actor):
    main_id, variant_id = warehouse_pair
    orphan = make_product("NOWH-1-S6", quantity=0, store=store6)

    with pytest.raises(InvalidInput):
        transfer_service.initiate_transfer(variant_id, 0, actor)
    with pytest.raises(InvalidInput):
        transfer_service.initiate_transfer(main_id, 1, actor)
    with pytest.raises(NotFound):
        transfer_service.initiate_transfer(orphan.id, 1, actor)
    with pytest.raises(NotFound):
        transfer_service.initiate_transfer(987654, 1, actor)


def test_initiate_rejects_inactive_destination(db_session, make_product, store6, actor):
    main = make_product("WH-009", quantity=20)
    inactive = make_product("WH-009-S6", quantity=0, store=store6, active=False)

    with pytest.raises(NotFound):
        transfer_service.initiate_transfer(inactive.id, 5, actor)

    assert _qty(main.id) == 20
    assert db.session.query(InventoryTransfer).count() == 0


def test_unknown_transfer(db_session, actor):
    with pytest.raises(NotFound):
        transfer_service.get_transfer(31337)
    with pytest.raises(NotFound):
        transfer_service.confirm_transfer(31337, actor)


def test_list_transfers_by_status(db_session, warehouse_pair, actor):
    _, variant_id = warehouse_pair
    first = transfer_service.initiate_transfer(variant_id, 1, actor)
    transfer_service.initiate_transfer(variant_id, 1, actor)
    transfer_service.cancel_transfer(first.id, actor)

    assert len(transfer_service.list_transfers()) == 2
    assert [t.status for t in transfer_service.list_transfers(status="cancelled")] == ["cancelled"]
    assert len(transfer_service.list_transfers(store_id=6)) == 2
