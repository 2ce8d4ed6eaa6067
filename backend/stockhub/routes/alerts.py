# backend/stockhub/routes/alerts.py
"""
Inventory alert routes (low stock, expiring, expired).

Alerts live in the mirror store, so a mirror outage surfaces here as 502.
"""
from flask import Blueprint, g, request

from ..decorators import require_actor
from ..errors import InventoryError
from ..extensions import db
from ..models import Product
from ..services import alert_service


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("")
def list_alerts_route():
    """Query params: status (PENDING|RESOLVED), alert_type (LOW_STOCK|EXPIRY)."""
    try:
        alerts = alert_service.list_alerts(
            status=request.args.get("status"),
            alert_type=request.args.get("alert_type"),
        )
    except InventoryError as e:
        return e.to_dict(), e.http_status
    return {"items": [a.to_dict() for a in alerts]}


@alerts_bp.get("/<alert_id>")
def get_alert_route(alert_id: str):
    try:
        return alert_service.get_alert(alert_id).to_dict()
    except InventoryError as e:
        return e.to_dict(), e.http_status


@alerts_bp.post("/evaluate")
def evaluate_alerts_route():
    """Evaluate every live product now."""
    products = (
        db.session.query(Product)
        .filter(Product.active.is_(True), Product.deleted_at.is_(None))
        .all()
    )
    return alert_service.evaluate_products(products), 200


@alerts_bp.post("/<alert_id>/resolve")
@require_actor
def resolve_alert_route(alert_id: str):
    """Request body (optional): {"note": str}."""
    data = request.get_json(silent=True) or {}
    try:
        alert = alert_service.resolve_alert(alert_id, g.actor, data.get("note"))
    except InventoryError as e:
        return e.to_dict(), e.http_status
    return alert.to_dict(), 200
