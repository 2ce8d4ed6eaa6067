# backend/stockhub/services/alert_service.py
"""
Inventory alert state machine (low stock, expiring, expired).

Alerts are documents in the mirror "alerts" collection keyed by a
deterministic id (LOW_<product_id>, EXP_<product_id>), so every write is a
keyed upsert and concurrent evaluations of one product cannot produce
duplicate rows.

STATES: PENDING, RESOLVED

LOW_STOCK (threshold = reorder_level, <= 0 disables alerting):
- quantity <= threshold, alert absent or RESOLVED -> reopen (new PENDING,
  created_at = now, resolution fields cleared)
- quantity <= threshold, alert PENDING            -> refresh metadata only
- quantity > threshold                            -> no action. This engine
  never resolves low-stock alerts on its own; resolution is an explicit
  review step (resolve_alert / resolve_low_stock_if_recovered).

EXPIRY (window = EXPIRY_ALERT_DAYS, default 30):
- expiry_date < today                 -> EXPIRED
- expiry_date <= today + window       -> EXPIRING_SOON
- otherwise / no expiry_date          -> no alert
- reopen when absent, RESOLVED, or the kind changed (EXPIRING_SOON ->
  EXPIRED is a new incident); otherwise refresh metadata only.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from flask import current_app

from ..actor import Actor
from ..errors import InvalidState, MirrorSyncFailed, NotFound
from .mirror_service import COLLECTION_ALERTS, get_mirror_store
from stockhub.time_utils import parse_iso_date, to_utc_z, utcnow


ALERT_TYPE_LOW_STOCK = "LOW_STOCK"
ALERT_TYPE_EXPIRY = "EXPIRY"

EXPIRY_KIND_EXPIRED = "EXPIRED"
EXPIRY_KIND_EXPIRING_SOON = "EXPIRING_SOON"

STATUS_PENDING = "PENDING"
STATUS_RESOLVED = "RESOLVED"

DEFAULT_EXPIRY_WINDOW_DAYS = 30

_ID_PREFIX = {
    ALERT_TYPE_LOW_STOCK: "LOW",
    ALERT_TYPE_EXPIRY: "EXP",
}


@dataclass
class Alert:
    id: str
    product_id: int
    product_name: Optional[str]
    alert_type: str
    status: str
    quantity_affected: int
    created_at: Optional[str]
    updated_at: Optional[str]
    expiry_kind: Optional[str] = None
    resolved_at: Optional[str] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None

    @classmethod
    def from_doc(cls, doc_id: str, doc: dict) -> "Alert":
        return cls(
            id=doc.get("id", doc_id),
            product_id=doc.get("product_id"),
            product_name=doc.get("product_name"),
            alert_type=doc.get("alert_type"),
            status=doc.get("status"),
            quantity_affected=doc.get("quantity_affected"),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
            expiry_kind=doc.get("expiry_kind"),
            resolved_at=doc.get("resolved_at"),
            resolved_by=doc.get("resolved_by"),
            resolution_note=doc.get("resolution_note"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ProductSnapshot:
    """The fields alert evaluation reads; built from a Product row or a dict."""
    id: int
    name: Optional[str]
    quantity: int
    reorder_level: int
    expiry_date: Optional[date] = field(default=None)

    @classmethod
    def of(cls, product) -> "ProductSnapshot":
        if isinstance(product, ProductSnapshot):
            return product
        if isinstance(product, dict):
            return cls(
                id=int(product["id"]),
                name=product.get("name"),
                quantity=int(product.get("quantity") or 0),
                reorder_level=int(product.get("reorder_level") or 0),
                expiry_date=parse_iso_date(product.get("expiry_date")),
            )
        return cls(
            id=product.id,
            name=product.name,
            quantity=int(product.quantity or 0),
            reorder_level=int(product.reorder_level or 0),
            expiry_date=parse_iso_date(product.expiry_date),
        )


def alert_id_for(alert_type: str, product_id: int) -> str:
    return f"{_ID_PREFIX[alert_type]}_{product_id}"


def _expiry_window_days() -> int:
    return int(current_app.config.get("EXPIRY_ALERT_DAYS", DEFAULT_EXPIRY_WINDOW_DAYS))


def _read(alert_id: str) -> dict | None:
    try:
        return get_mirror_store().read_doc(COLLECTION_ALERTS, alert_id)
    except Exception as exc:
        raise MirrorSyncFailed(f"Alert read failed for {alert_id}: {exc}", alert_id=alert_id) from exc


def _upsert(alert_id: str, payload: dict) -> Alert:
    store = get_mirror_store()
    try:
        store.upsert_doc(COLLECTION_ALERTS, alert_id, payload)
        doc = store.read_doc(COLLECTION_ALERTS, alert_id)
    except Exception as exc:
        raise MirrorSyncFailed(f"Alert write failed for {alert_id}: {exc}", alert_id=alert_id) from exc
    return Alert.from_doc(alert_id, doc or payload)


def _open_or_refresh(
    *,
    snapshot: ProductSnapshot,
    alert_type: str,
    now: datetime,
    expiry_kind: Optional[str] = None,
    extra: Optional[dict] = None,
) -> Alert:
    alert_id = alert_id_for(alert_type, snapshot.id)
    existing = _read(alert_id)
    now_z = to_utc_z(now)

    reopen = (
        existing is None
        or existing.get("status") == STATUS_RESOLVED
        or (alert_type == ALERT_TYPE_EXPIRY and existing.get("expiry_kind") != expiry_kind)
    )

    if reopen:
        payload = {
            "id": alert_id,
            "product_id": snapshot.id,
            "product_name": snapshot.name,
            "alert_type": alert_type,
            "expiry_kind": expiry_kind,
            "status": STATUS_PENDING,
            "quantity_affected": snapshot.quantity,
            "created_at": now_z,
            "updated_at": now_z,
            "resolved_at": None,
            "resolved_by": None,
            "resolution_note": None,
            **(extra or {}),
        }
    else:
        # Same incident: created_at is left alone.
        payload = {
            "product_name": snapshot.name,
            "quantity_affected": snapshot.quantity,
            "updated_at": now_z,
            **(extra or {}),
        }
    return _upsert(alert_id, payload)


def classify_expiry(expiry_date: Optional[date], today: date, window_days: int) -> Optional[str]:
    if expiry_date is None:
        return None
    if expiry_date < today:
        return EXPIRY_KIND_EXPIRED
    if expiry_date <= today + timedelta(days=window_days):
        return EXPIRY_KIND_EXPIRING_SOON
    return None


def evaluate_low_stock(product, *, now: Optional[datetime] = None) -> Optional[Alert]:
    """Returns the open alert, or None when no alert action was taken."""
    snapshot = ProductSnapshot.of(product)
    threshold = snapshot.reorder_level
    if threshold <= 0:
        return None
    if snapshot.quantity > threshold:
        return None
    return _open_or_refresh(
        snapshot=snapshot,
        alert_type=ALERT_TYPE_LOW_STOCK,
        now=now or utcnow(),
        extra={"reorder_level": threshold},
    )


def evaluate_expiry(product, *, now: Optional[datetime] = None) -> Optional[Alert]:
    snapshot = ProductSnapshot.of(product)
    now = now or utcnow()
    kind = classify_expiry(snapshot.expiry_date, now.date(), _expiry_window_days())
    if kind is None:
        return None
    return _open_or_refresh(
        snapshot=snapshot,
        alert_type=ALERT_TYPE_EXPIRY,
        now=now,
        expiry_kind=kind,
        extra={"expiry_date": snapshot.expiry_date.isoformat()},
    )


def evaluate_product_alerts(product, *, now: Optional[datetime] = None) -> list[Alert]:
    now = now or utcnow()
    alerts = [
        evaluate_low_stock(product, now=now),
        evaluate_expiry(product, now=now),
    ]
    return [a for a in alerts if a is not None]


def evaluate_products(products: Iterable, *, now: Optional[datetime] = None) -> dict:
    """
    Evaluate many products (listing pass or post-write hook).

    A failure on one product is logged and does not stop the others.
    """
    now = now or utcnow()
    summary = {"evaluated": 0, "open": 0, "failed": 0}
    for product in products:
        try:
            summary["open"] += len(evaluate_product_alerts(product, now=now))
            summary["evaluated"] += 1
        except MirrorSyncFailed as exc:
            summary["failed"] += 1
            current_app.logger.warning("Alert evaluation failed for product %s: %s", getattr(product, "id", product), exc)
    return summary


def get_alert(alert_id: str) -> Alert:
    doc = _read(alert_id)
    if doc is None:
        raise NotFound(f"Alert {alert_id} not found", alert_id=alert_id)
    return Alert.from_doc(alert_id, doc)


def list_alerts(*, status: Optional[str] = None, alert_type: Optional[str] = None) -> list[Alert]:
    try:
        docs = get_mirror_store().list_docs(COLLECTION_ALERTS)
    except Exception as exc:
        raise MirrorSyncFailed(f"Alert listing failed: {exc}") from exc

    alerts = [Alert.from_doc(doc_id, doc) for doc_id, doc in docs]
    if status is not None:
        alerts = [a for a in alerts if a.status == status]
    if alert_type is not None:
        alerts = [a for a in alerts if a.alert_type == alert_type]
    return sorted(alerts, key=lambda a: a.created_at or "", reverse=True)


def resolve_alert(
    alert_id: str,
    actor: Actor,
    note: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> Alert:
    """External resolution path (manual review)."""
    alert = get_alert(alert_id)
    if alert.status == STATUS_RESOLVED:
        raise InvalidState(f"Alert {alert_id} is already resolved", alert_id=alert_id)

    now_z = to_utc_z(now or utcnow())
    return _upsert(alert_id, {
        "status": STATUS_RESOLVED,
        "resolved_at": now_z,
        "resolved_by": actor.display_name,
        "resolution_note": note,
        "updated_at": now_z,
    })


def resolve_low_stock_if_recovered(
    product,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
) -> Optional[Alert]:
    """
    Restock review helper: resolve LOW_<id> when quantity is back above the
    reorder level (quantity == reorder_level is still low).

    Not called by the ledger; an operator or review job invokes it.
    """
    snapshot = ProductSnapshot.of(product)
    if snapshot.reorder_level > 0:
        recovered = snapshot.quantity > snapshot.reorder_level
    else:
        recovered = snapshot.quantity > 0
    if not recovered:
        return None

    alert_id = alert_id_for(ALERT_TYPE_LOW_STOCK, snapshot.id)
    existing = _read(alert_id)
    if existing is None or existing.get("status") != STATUS_PENDING:
        return None
    return resolve_alert(alert_id, actor, "Stock recovered above reorder level", now=now)
