"""
Alert state machine tests: idempotent evaluation, reopen law, expiry kinds
and the explicit resolution path.
"""
from datetime import date, datetime, timedelta

import pytest

from stockhub.actor import Actor
from stockhub.errors import InvalidState, NotFound
from stockhub.services import alert_service
from stockhub.services.alert_service import (
    EXPIRY_KIND_EXPIRED,
    EXPIRY_KIND_EXPIRING_SOON,
    STATUS_PENDING,
    STATUS_RESOLVED,
)
from stockhub.services.mirror_service import COLLECTION_ALERTS


T0 = datetime(2026, 3, 1, 9, 0, 0)
T1 = T0 + timedelta(hours=2)
T2 = T0 + timedelta(days=1)


def _alert_docs(mirror):
    return mirror.list_docs(COLLECTION_ALERTS)


def test_low_stock_evaluation_is_idempotent(db_session, make_product, mirror):
    product = make_product("ALR-001", quantity=2, reorder_level=5)

    first = alert_service.evaluate_low_stock(product, now=T0)
    second = alert_service.evaluate_low_stock(product, now=T1)

    assert first.id == second.id == f"LOW_{product.id}"
    assert second.status == STATUS_PENDING
    assert second.created_at == first.created_at
    assert second.updated_at != first.updated_at
    assert len(_alert_docs(mirror)) == 1


def test_quantity_equal_to_threshold_is_low(db_session, make_product):
    product = make_product("ALR-002", quantity=5, reorder_level=5)
    assert alert_service.evaluate_low_stock(product, now=T0) is not None


def test_threshold_zero_disables_low_stock(db_session, make_product, mirror):
    product = make_product("ALR-003", quantity=0, reorder_level=0)
    assert alert_service.evaluate_low_stock(product, now=T0) is None
    assert _alert_docs(mirror) == []


def test_recovered_stock_does_not_auto_resolve(db_session, make_product):
    product = make_product("ALR-004", quantity=2, reorder_level=5)
    alert_service.evaluate_low_stock(product, now=T0)

    product.quantity = 50
    db_session.commit()

    assert alert_service.evaluate_low_stock(product, now=T1) is None
    assert alert_service.get_alert(f"LOW_{product.id}").status == STATUS_PENDING


def test_resolved_alert_reopens_as_new_incident(db_session, make_product, actor):
    product = make_product("ALR-005", quantity=2, reorder_level=5)
    opened = alert_service.evaluate_low_stock(product, now=T0)
    resolved = alert_service.resolve_alert(opened.id, actor, "restocked", now=T1)

    assert resolved.status == STATUS_RESOLVED
    assert resolved.resolved_by == "tester"
    assert resolved.resolution_note == "restocked"

    reopened = alert_service.evaluate_low_stock(product, now=T2)

    assert reopened.status == STATUS_PENDING
    assert reopened.created_at != opened.created_at
    assert reopened.resolved_at is None
    assert reopened.resolved_by is None
    assert reopened.resolution_note is None


def test_resolve_twice_is_invalid_state(db_session, make_product, actor):
    product = make_product("ALR-006", quantity=1, reorder_level=5)
    alert = alert_service.evaluate_low_stock(product, now=T0)
    alert_service.resolve_alert(alert.id, actor)

    with pytest.raises(InvalidState):
        alert_service.resolve_alert(alert.id, actor)
    with pytest.raises(NotFound):
        alert_service.resolve_alert("LOW_999999", actor)


@pytest.mark.parametrize("offset_days,expected", [
    (-1, EXPIRY_KIND_EXPIRED),
    (0, EXPIRY_KIND_EXPIRING_SOON),
    (30, EXPIRY_KIND_EXPIRING_SOON),
    (31, None),
])
def test_classify_expiry(offset_days, expected):
    today = date(2026, 3, 1)
    assert alert_service.classify_expiry(today + timedelta(days=offset_days), today, 30) == expected


def test_no_expiry_date_no_alert(db_session, make_product):
    product = make_product("EXP-001", quantity=1)
    assert alert_service.evaluate_expiry(product, now=T0) is None


def test_expiry_kind_change_reopens(db_session, make_product):
    product = make_product("EXP-002", quantity=4, expiry_date=date(2026, 3, 10))

    soon = alert_service.evaluate_expiry(product, now=T0)
    again = alert_service.evaluate_expiry(product, now=T1)
    expired = alert_service.evaluate_expiry(product, now=datetime(2026, 3, 11, 8, 0))

    assert soon.id == f"EXP_{product.id}"
    assert soon.expiry_kind == EXPIRY_KIND_EXPIRING_SOON
    assert again.created_at == soon.created_at
    assert expired.expiry_kind == EXPIRY_KIND_EXPIRED
    assert expired.status == STATUS_PENDING
    assert expired.created_at != soon.created_at


def test_expiry_window_follows_config(app, db_session, make_product, monkeypatch):
    monkeypatch.setitem(app.config, "EXPIRY_ALERT_DAYS", 5)
    product = make_product("EXP-003", quantity=4, expiry_date=date(2026, 3, 10))

    assert alert_service.evaluate_expiry(product, now=T0) is None


def test_evaluate_from_mirror_snapshot_dict(db_session):
    alerts = alert_service.evaluate_product_alerts(
        {"id": 41, "name": "Milk", "quantity": 1, "reorder_level": 3, "expiry_date": "2026-02-20"},
        now=T0,
    )
    assert sorted(a.id for a in alerts) == ["EXP_41", "LOW_41"]


def test_evaluate_products_survives_mirror_outage(db_session, make_product, broken_mirror):
    products = [
        make_product("OUT-001", quantity=1, reorder_level=5),
        make_product("OUT-002", quantity=9, reorder_level=5),
    ]

    summary = alert_service.evaluate_products(products, now=T0)

    assert summary == {"evaluated": 1, "open": 0, "failed": 1}


def test_resolve_low_stock_if_recovered(db_session, make_product):
    reviewer = Actor(user_id=3, username="reviewer")
    product = make_product("REV-001", quantity=2, reorder_level=5)
    alert_service.evaluate_low_stock(product, now=T0)

    product.quantity = 5
    db_session.commit()
    assert alert_service.resolve_low_stock_if_recovered(product, reviewer) is None

    product.quantity = 6
    db_session.commit()
    resolved = alert_service.resolve_low_stock_if_recovered(product, reviewer)
    assert resolved.status == STATUS_RESOLVED
    assert resolved.resolved_by == "reviewer"


def test_list_alerts_filters(db_session, make_product):
    low = make_product("LIS-001", quantity=1, reorder_level=5)
    exp = make_product("LIS-002", quantity=9, expiry_date=date(2026, 2, 1))
    alert_service.evaluate_product_alerts(low, now=T0)
    alert_service.evaluate_product_alerts(exp, now=T1)

    assert [a.id for a in alert_service.list_alerts()] == [f"EXP_{exp.id}", f"LOW_{low.id}"]
    assert [a.id for a in alert_service.list_alerts(alert_type="LOW_STOCK")] == [f"LOW_{low.id}"]
    assert alert_service.list_alerts(status=STATUS_RESOLVED) == []
