# backend/stockhub/routes/system.py
"""
System health endpoint.

Reports the authoritative database, the document mirror and the mirror
outbox backlog. Only an unavailable database makes the service unhealthy;
a mirror problem is reported as degraded.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Store
from ..services.mirror_service import COLLECTION_PRODUCTS, get_mirror_store, outbox_backlog
from stockhub.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        store_count = db.session.query(Store).count()
        product_count = db.session.query(Product).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stores": store_count,
                "products": product_count,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_mirror_health() -> dict:
    start_time = time.time()
    try:
        get_mirror_store().read_doc(COLLECTION_PRODUCTS, "__health__")
        backlog = outbox_backlog()
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Mirror health check failed")
        return {
            "status": "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Mirror store error",
        }

    elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": "degraded" if backlog["failed"] else "healthy",
        "latency_ms": round(elapsed_ms, 2),
        "details": {
            "backend": current_app.config.get("MIRROR_BACKEND"),
            "outbox_pending": backlog["pending"],
            "outbox_failed": backlog["failed"],
        },
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unavailable
    """
    start_time = time.time()

    database_health = check_database_health()
    mirror_health = check_mirror_health()

    all_checks = [database_health, mirror_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "mirror": mirror_health,
        },
    }
    return response, http_status
