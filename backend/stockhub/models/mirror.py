from __future__ import annotations

from ..extensions import db
from stockhub.time_utils import to_utc_z, utcnow


OUTBOX_STATUS_PENDING = "pending"
OUTBOX_STATUS_DELIVERED = "delivered"
OUTBOX_STATUS_FAILED = "failed"
OUTBOX_STATUS_SUPERSEDED = "superseded"


class MirrorDocument(db.Model):
    """
    Document in the secondary mirror store.

    Lives on the "mirror" bind, so it is never part of an authoritative
    transaction. (collection, doc_id) is the document key; for mirrored
    entities doc_id is the authoritative primary id as a string.
    """
    __bind_key__ = "mirror"
    __tablename__ = "mirror_documents"

    collection = db.Column(db.String(64), primary_key=True)
    doc_id = db.Column(db.String(128), primary_key=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<MirrorDocument {self.collection}/{self.doc_id}>"


class MirrorOutbox(db.Model):
    """
    Pending mirror write recorded in the same transaction as the primary change.

    Delivered after commit by services.mirror_service.dispatch_outbox; failed
    deliveries stay pending and are retried until max attempts.
    """
    __tablename__ = "mirror_outbox"

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(64), nullable=False)
    doc_id = db.Column(db.String(128), nullable=False)
    payload = db.Column(db.JSON, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=OUTBOX_STATUS_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    delivered_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "collection": self.collection,
            "doc_id": self.doc_id,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }
