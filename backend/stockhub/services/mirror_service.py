# backend/stockhub/services/mirror_service.py
"""
Dual-store sync: authoritative relational store -> secondary document mirror.

Mirror Invariants (authoritative)

- The mirror never participates in an authoritative transaction. Mirror
  writes use their own session on the "mirror" bind.
- Writes are recorded as MirrorOutbox rows inside the authoritative
  transaction (enqueue_*), then delivered after commit (dispatch_outbox).
- A delivery failure is logged and left pending for a later dispatch; it
  never raises out of a committed operation.
- Documents are keyed by the authoritative primary id where one exists, and
  upserts merge fields into an existing document.
- Reads prefer the authoritative store; the mirror is only consulted when
  the authoritative store is unavailable (get_product_snapshot).
"""
from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import MirrorSyncFailed, NotFound
from ..extensions import db
from ..models import MirrorDocument, MirrorOutbox, Product
from ..models.mirror import (
    OUTBOX_STATUS_DELIVERED,
    OUTBOX_STATUS_FAILED,
    OUTBOX_STATUS_PENDING,
    OUTBOX_STATUS_SUPERSEDED,
)
from stockhub.time_utils import utcnow


COLLECTION_PRODUCTS = "products"
COLLECTION_STOCK_MOVEMENTS = "stock_movements"
COLLECTION_TRANSFERS = "inventory_transfers"
COLLECTION_ALERTS = "alerts"
COLLECTION_STOCK_AUDITS = "stock_audits"

EXTENSION_KEY = "stockhub.mirror"


class MirrorStore(ABC):
    """One explicit interface per backing document store."""

    @abstractmethod
    def upsert_doc(self, collection: str, doc_id: str, payload: dict) -> None:
        """Merge ``payload`` into the document, creating it under ``doc_id`` if absent."""

    @abstractmethod
    def read_doc(self, collection: str, doc_id: str) -> dict | None:
        ...

    @abstractmethod
    def list_docs(self, collection: str) -> list[tuple[str, dict]]:
        ...


class SqlMirrorStore(MirrorStore):
    """Document store backed by the ``mirror`` SQLAlchemy bind."""

    bind_key = "mirror"

    def _session(self) -> Session:
        return Session(db.engines[self.bind_key], expire_on_commit=False)

    def upsert_doc(self, collection: str, doc_id: str, payload: dict) -> None:
        doc_id = str(doc_id)
        for attempt in range(2):
            try:
                with self._session() as session, session.begin():
                    doc = session.get(MirrorDocument, (collection, doc_id), with_for_update=True)
                    if doc is None:
                        session.add(MirrorDocument(collection=collection, doc_id=doc_id, data=dict(payload)))
                    else:
                        doc.data = {**(doc.data or {}), **payload}
                        doc.updated_at = utcnow()
                return
            except IntegrityError:
                # Lost a create race on the same key: retry as an update.
                if attempt:
                    raise

    def read_doc(self, collection: str, doc_id: str) -> dict | None:
        with self._session() as session:
            doc = session.get(MirrorDocument, (collection, str(doc_id)))
            return dict(doc.data) if doc is not None else None

    def list_docs(self, collection: str) -> list[tuple[str, dict]]:
        with self._session() as session:
            rows = (
                session.query(MirrorDocument)
                .filter(MirrorDocument.collection == collection)
                .order_by(MirrorDocument.doc_id.asc())
                .all()
            )
            return [(row.doc_id, dict(row.data)) for row in rows]


class InMemoryMirrorStore(MirrorStore):
    """Process-local document store for development and tests."""

    def __init__(self):
        self._docs: dict[tuple[str, str], dict] = {}
        self._lock = threading.Lock()

    def upsert_doc(self, collection: str, doc_id: str, payload: dict) -> None:
        key = (collection, str(doc_id))
        with self._lock:
            current = self._docs.get(key, {})
            self._docs[key] = {**current, **copy.deepcopy(payload)}

    def read_doc(self, collection: str, doc_id: str) -> dict | None:
        with self._lock:
            doc = self._docs.get((collection, str(doc_id)))
            return copy.deepcopy(doc) if doc is not None else None

    def list_docs(self, collection: str) -> list[tuple[str, dict]]:
        with self._lock:
            return sorted(
                (doc_id, copy.deepcopy(data))
                for (coll, doc_id), data in self._docs.items()
                if coll == collection
            )


MIRROR_BACKENDS = {
    "sql": SqlMirrorStore,
    "memory": InMemoryMirrorStore,
}


def init_mirror(app) -> None:
    backend = app.config.get("MIRROR_BACKEND", "sql")
    try:
        store_cls = MIRROR_BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unknown MIRROR_BACKEND {backend!r}") from None
    app.extensions[EXTENSION_KEY] = store_cls()


def get_mirror_store() -> MirrorStore:
    return current_app.extensions[EXTENSION_KEY]


def sync_to_mirror(entity_type: str, primary_id, payload: dict) -> None:
    """
    Upsert one entity into the mirror, keyed by its primary id.

    Raises MirrorSyncFailed; callers after a commit catch and log it.
    """
    try:
        get_mirror_store().upsert_doc(entity_type, str(primary_id), payload)
    except Exception as exc:
        raise MirrorSyncFailed(
            f"Mirror sync failed for {entity_type}/{primary_id}: {exc}",
            entity_type=entity_type,
            primary_id=str(primary_id),
        ) from exc


# ---------------------------------------------------------------------------
# Outbox
# ---------------------------------------------------------------------------

def enqueue_mirror(collection: str, doc_id, payload: dict) -> MirrorOutbox:
    """Record a mirror write in the current (authoritative) transaction."""
    row = MirrorOutbox(
        collection=collection,
        doc_id=str(doc_id),
        payload=payload,
        status=OUTBOX_STATUS_PENDING,
    )
    db.session.add(row)
    return row


def enqueue_product(product: Product) -> MirrorOutbox:
    db.session.flush()
    if product.mirror_id is None:
        product.mirror_id = str(product.id)
    return enqueue_mirror(COLLECTION_PRODUCTS, product.mirror_id, product.to_dict())


def enqueue_entity(collection: str, entity) -> MirrorOutbox:
    db.session.flush()
    return enqueue_mirror(collection, entity.id, entity.to_dict())


def dispatch_outbox(limit: int | None = None) -> dict:
    """
    Deliver pending outbox rows to the mirror. Never raises.

    Rows are delivered oldest first. Once a document key fails, later rows
    for the same key wait for the next dispatch so an older snapshot can
    never overwrite a newer one.
    """
    summary = {"delivered": 0, "retrying": 0, "failed": 0}
    logger = current_app.logger
    max_attempts = current_app.config.get("MIRROR_OUTBOX_MAX_ATTEMPTS", 5)
    if limit is None:
        limit = current_app.config.get("MIRROR_OUTBOX_BATCH_SIZE", 100)

    try:
        rows = (
            db.session.query(MirrorOutbox)
            .filter(MirrorOutbox.status == OUTBOX_STATUS_PENDING)
            .order_by(MirrorOutbox.id.asc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Mirror outbox unavailable; skipping dispatch")
        return summary

    blocked: set[tuple[str, str]] = set()
    for row in rows:
        key = (row.collection, row.doc_id)
        if key in blocked:
            continue
        try:
            sync_to_mirror(row.collection, row.doc_id, row.payload)
        except MirrorSyncFailed as exc:
            blocked.add(key)
            row.attempts += 1
            row.last_error = str(exc)
            if row.attempts >= max_attempts:
                row.status = OUTBOX_STATUS_FAILED
                summary["failed"] += 1
            else:
                summary["retrying"] += 1
            logger.warning(
                "MirrorSyncFailed outbox_id=%s %s/%s attempt=%s: %s",
                row.id, row.collection, row.doc_id, row.attempts, exc,
            )
            continue
        row.status = OUTBOX_STATUS_DELIVERED
        row.delivered_at = utcnow()
        row.last_error = None
        summary["delivered"] += 1

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to record mirror outbox progress")
    return summary


def outbox_backlog() -> dict:
    pending = db.session.query(MirrorOutbox).filter_by(status=OUTBOX_STATUS_PENDING).count()
    failed = db.session.query(MirrorOutbox).filter_by(status=OUTBOX_STATUS_FAILED).count()
    return {"pending": pending, "failed": failed}


def requeue_failed() -> int:
    """
    Give rows that exhausted their attempts another round.

    A failed row whose document already received a newer delivered snapshot
    is marked superseded instead, so it can never overwrite that snapshot.
    Returns the number of rows put back to pending.
    """
    rows = (
        db.session.query(MirrorOutbox)
        .filter(MirrorOutbox.status == OUTBOX_STATUS_FAILED)
        .order_by(MirrorOutbox.id.asc())
        .all()
    )
    requeued = 0
    for row in rows:
        newer_delivered = (
            db.session.query(MirrorOutbox.id)
            .filter(
                MirrorOutbox.collection == row.collection,
                MirrorOutbox.doc_id == row.doc_id,
                MirrorOutbox.id > row.id,
                MirrorOutbox.status == OUTBOX_STATUS_DELIVERED,
            )
            .first()
        )
        if newer_delivered is not None:
            row.status = OUTBOX_STATUS_SUPERSEDED
            continue
        row.status = OUTBOX_STATUS_PENDING
        row.attempts = 0
        requeued += 1
    db.session.commit()
    return requeued


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_product_snapshot(product_id: int) -> dict[str, Any]:
    """
    Product as a plain dict, authoritative store first.

    Falls back to the mirror copy only when the relational store errors
    (degraded-read mode). The returned dict carries ``source``.
    """
    try:
        product = db.session.get(Product, product_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Authoritative store unavailable; reading product %s from mirror", product_id,
        )
        try:
            doc = get_mirror_store().read_doc(COLLECTION_PRODUCTS, str(product_id))
        except Exception as exc:
            raise MirrorSyncFailed(f"Mirror read failed for product {product_id}: {exc}") from exc
        if doc is None:
            raise NotFound(f"Product {product_id} not found", product_id=product_id)
        return {**doc, "source": "mirror"}

    if product is None:
        raise NotFound(f"Product {product_id} not found", product_id=product_id)
    return {**product.to_dict(), "source": "primary"}
