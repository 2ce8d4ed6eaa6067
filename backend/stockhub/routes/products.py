# Overview: Flask API routes for product stock operations; parses input and returns JSON responses.

# backend/stockhub/routes/products.py
"""
Product stock routes.

Reads need no actor. Every mutation requires @require_actor, which puts the
upstream-authenticated user on g.actor for movement and audit attribution.

Error mapping: InventoryError subclasses carry their own http_status
(NotFound 404, InvalidInput 400, InsufficientStock / DuplicateAssignment 409).
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_actor
from ..errors import InventoryError, InvalidInput
from ..extensions import db
from ..services import deletion_service, inventory_service
from ..services.audit_service import list_stock_audits
from ..services.ledger_service import get_movement_history
from ..services.mirror_service import get_product_snapshot


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _error_response(exc: InventoryError):
    db.session.rollback()
    return exc.to_dict(), exc.http_status


def _unexpected(action: str):
    db.session.rollback()
    current_app.logger.exception("Unexpected error during %s", action)
    return {"error": "Internal server error"}, 500


@products_bp.get("")
def list_products_route():
    """
    List live products and evaluate their alerts.

    Query params:
    - store_id: int (optional) - only variants of this store
    - main_only: bool (optional) - only main products
    - include_deleted: bool (optional)
    """
    store_id = request.args.get("store_id", type=int)
    main_only = request.args.get("main_only", "false").lower() in ("1", "true", "yes")
    include_deleted = request.args.get("include_deleted", "false").lower() in ("1", "true", "yes")

    products = inventory_service.list_products(
        store_id=store_id,
        main_only=main_only,
        include_deleted=include_deleted,
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    """Authoritative read; served from the mirror when the database is down."""
    try:
        return get_product_snapshot(product_id)
    except InventoryError as e:
        return _error_response(e)


@products_bp.get("/<int:product_id>/movements")
def movement_history_route(product_id: int):
    limit = request.args.get("limit", default=200, type=int)
    try:
        movements = get_movement_history(product_id, limit=max(1, min(limit, 1000)))
    except InventoryError as e:
        return _error_response(e)
    return {"items": [m.to_dict() for m in movements]}


@products_bp.get("/<int:product_id>/audits")
def audit_history_route(product_id: int):
    """Stock audit trail from the mirror; 502 while the mirror is down."""
    try:
        audits = list_stock_audits(product_id)
    except InventoryError as e:
        return _error_response(e)
    return {"items": audits}


@products_bp.get("/<int:product_id>/assigned-stores")
def assigned_stores_route(product_id: int):
    try:
        store_ids = inventory_service.get_assigned_stores(product_id)
    except InventoryError as e:
        return _error_response(e)
    return {"product_id": product_id, "store_ids": store_ids}


@products_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_route(product_id: int):
    """
    Add or remove stock.

    Request body:
    {
        "delta": int (non-zero),
        "reason": str (optional, ledger reference),
        "notes": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    if "delta" not in payload:
        return {"error": "Missing required field: delta"}, 400

    try:
        result = inventory_service.adjust(
            product_id,
            payload["delta"],
            payload.get("reason"),
            g.actor,
            notes=payload.get("notes"),
        )
    except InventoryError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("stock adjustment")

    return result.to_dict(), 200


@products_bp.post("/<int:product_id>/set-quantity")
@require_actor
def set_quantity_route(product_id: int):
    """Physical count: {"quantity": int >= 0, "reason": str (optional)}."""
    payload = request.get_json(silent=True) or {}
    if "quantity" not in payload:
        return {"error": "Missing required field: quantity"}, 400

    try:
        result = inventory_service.set_quantity(
            product_id,
            payload["quantity"],
            payload.get("reason"),
            g.actor,
            notes=payload.get("notes"),
        )
    except InventoryError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("set quantity")

    return result.to_dict(), 200


@products_bp.post("/<int:product_id>/assign")
@require_actor
def assign_route(product_id: int):
    """
    Create a store variant of a main product.

    Request body:
    {
        "store_id": int,
        "quantity": int >= 0 (moved out of the main product)
    }
    """
    payload = request.get_json(silent=True) or {}
    missing = [f for f in ("store_id", "quantity") if f not in payload]
    if missing:
        return {"error": f"Missing required field: {missing[0]}"}, 400

    try:
        result = inventory_service.assign_to_store(
            product_id,
            payload["store_id"],
            payload["quantity"],
            g.actor,
        )
    except InventoryError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("store assignment")

    return result.to_dict(), 201


@products_bp.delete("/<int:product_id>")
@require_actor
def delete_product_route(product_id: int):
    try:
        variants_deleted = deletion_service.delete_product(product_id, g.actor)
    except InventoryError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("product delete")

    return {"ok": True, "variants_deleted": variants_deleted}, 200


@products_bp.post("/batch-delete")
@require_actor
def batch_delete_route():
    """Request body: {"ids": [int, ...]}. Per-id failures are reported, not raised."""
    payload = request.get_json(silent=True) or {}
    ids = payload.get("ids")
    if not isinstance(ids, list) or not ids:
        return {"error": "ids must be a non-empty list"}, 400
    if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
        return InvalidInput("ids must be integers").to_dict(), 400

    summary = deletion_service.batch_delete(ids, g.actor)
    return summary.to_dict(), 200
