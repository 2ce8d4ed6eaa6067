# backend/stockhub/routes/transfers.py
"""
Warehouse -> store transfer API routes.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor
from ..errors import InventoryError
from ..extensions import db
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    status = request.args.get("status")
    store_id = request.args.get("store_id", type=int)
    transfers = transfer_service.list_transfers(status=status, store_id=store_id)
    return {"items": [t.to_dict() for t in transfers]}


@transfers_bp.route("", methods=["POST"])
@require_actor
def initiate_transfer():
    """
    Reserve warehouse stock for a store variant.

    Request body:
    {
        "dest_product_id": int,
        "quantity": int > 0
    }

    Returns:
        201: Transfer created (pending)
        400: Invalid request
        404: Destination or warehouse product not found
        409: Insufficient warehouse stock
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.initiate_transfer(
            dest_product_id=data["dest_product_id"],
            quantity=data["quantity"],
            actor=g.actor,
        )
        return transfer.to_dict(), 201

    except KeyError as e:
        db.session.rollback()
        return {"error": f"Missing required field: {e}"}, 400
    except InventoryError as e:
        db.session.rollback()
        return e.to_dict(), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error initiating transfer")
        return {"error": "Internal server error"}, 500


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        return transfer_service.get_transfer(transfer_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.http_status


@transfers_bp.route("/<int:transfer_id>/confirm", methods=["POST"])
@require_actor
def confirm_transfer(transfer_id: int):
    """
    Receive a transfer at the store.

    Returns:
        200: Transfer completed
        404: Transfer not found
        409: Transfer not pending
    """
    try:
        transfer = transfer_service.confirm_transfer(transfer_id, g.actor)
        return transfer.to_dict(), 200

    except InventoryError as e:
        db.session.rollback()
        return e.to_dict(), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error confirming transfer %s", transfer_id)
        return {"error": "Internal server error"}, 500


@transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
@require_actor
def cancel_transfer(transfer_id: int):
    """
    Cancel a pending transfer and return the reservation to the warehouse.

    Request body (optional):
    {
        "reason": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.cancel_transfer(transfer_id, g.actor, reason=data.get("reason"))
        return transfer.to_dict(), 200

    except InventoryError as e:
        db.session.rollback()
        return e.to_dict(), e.http_status
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Unexpected error cancelling transfer %s", transfer_id)
        return {"error": "Internal server error"}, 500
