from __future__ import annotations

from ..extensions import db
from stockhub.time_utils import to_utc_z, utcnow


TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_COMPLETED = "completed"
TRANSFER_STATUS_CANCELLED = "cancelled"


class InventoryTransfer(db.Model):
    """
    Warehouse -> store transfer with deferred confirmation.

    LIFECYCLE:
    - pending: warehouse (source) stock already decremented (reserved)
    - completed: store (dest) stock incremented on receipt
    - cancelled: reservation returned to the warehouse
    completed / cancelled are terminal.
    """
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_transfers_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    source_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    dest_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    received_by = db.Column(db.Integer, nullable=True)
    received_at = db.Column(db.DateTime, nullable=True)

    source_product = db.relationship("Product", foreign_keys=[source_product_id])
    dest_product = db.relationship("Product", foreign_keys=[dest_product_id])

    @property
    def is_pending(self) -> bool:
        return self.status == TRANSFER_STATUS_PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_product_id": self.source_product_id,
            "dest_product_id": self.dest_product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
        }
