"""
Concurrency tests: per-SKU serialization of cascade work and keyed alert
upserts under parallel callers.
"""
import threading
import time

from stockhub.services import alert_service
from stockhub.services.concurrency import SKU_LOCK_STRIPES, _sku_locks, sku_lock
from stockhub.services.mirror_service import COLLECTION_ALERTS


def _run_threads(count, target):
    errors = []

    def _wrapped(index):
        try:
            target(index)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_wrapped, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert not any(thread.is_alive() for thread in threads)
    assert errors == []


def test_sku_lock_never_overlaps_for_the_same_base_sku():
    skus = ["bev-001", "BEV-001", "Bev-001", "BEV-001"]
    barrier = threading.Barrier(len(skus))
    guard = threading.Lock()
    state = {"active": 0, "peak": 0, "entered": 0}

    def _hold(index):
        barrier.wait(timeout=5)
        with sku_lock(skus[index]):
            with guard:
                state["active"] += 1
                state["entered"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.02)
            with guard:
                state["active"] -= 1

    _run_threads(len(skus), _hold)

    assert state["entered"] == len(skus)
    assert state["peak"] == 1


def test_sku_lock_pool_stays_fixed_size():
    for n in range(500):
        with sku_lock(f"SKU-{n}"):
            pass

    assert len(_sku_locks) == SKU_LOCK_STRIPES
    assert not any(lock.locked() for lock in _sku_locks)


def test_parallel_low_stock_evaluation_keeps_one_alert(app, mirror):
    snapshot = alert_service.ProductSnapshot(id=41, name="Cola", quantity=2, reorder_level=5)
    workers = 8
    barrier = threading.Barrier(workers)

    def _evaluate(index):
        with app.app_context():
            barrier.wait(timeout=5)
            alert_service.evaluate_low_stock(snapshot)

    _run_threads(workers, _evaluate)

    docs = mirror.list_docs(COLLECTION_ALERTS)
    assert [doc_id for doc_id, _ in docs] == ["LOW_41"]
    assert docs[0][1]["status"] == "pending"
    assert docs[0][1]["quantity_affected"] == 2
