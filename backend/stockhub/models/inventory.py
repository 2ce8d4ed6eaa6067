from __future__ import annotations

from ..extensions import db
from stockhub.time_utils import to_utc_z, utcnow


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TRANSFER = "transfer"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT, MOVEMENT_TRANSFER)


def _money(value):
    return float(value) if value is not None else None


class Store(db.Model):
    """
    A selling location. Read-only from the inventory engine's point of view.

    has_pos changes how variant SKUs are generated for the store
    (``<SKU>-POS-<NAME>`` instead of ``<SKU>-<NAME>``).
    """
    __tablename__ = "stores"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    has_pos = db.Column(db.Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r} has_pos={self.has_pos}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "has_pos": self.has_pos,
        }


class Product(db.Model):
    """
    Product row in the two-level hierarchy.

    HIERARCHY:
    - store_id IS NULL  -> main product (aggregate / warehouse stock)
    - store_id NOT NULL -> store variant (stock at one store)
    Main and variant rows are distinct identities. They are linked only by
    SKU / name heuristics (see services.sku_resolver), never by a foreign key,
    and store_id never flips between null and non-null after creation.

    Rows are soft-deleted (deleted_at + active=False), never removed.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_non_negative"),
        db.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_non_negative"),
        db.Index("ix_products_sku_store", "sku", "store_id"),
        db.Index("ix_products_active_deleted", "active", "deleted_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    mirror_id = db.Column(db.String(64), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(128), nullable=True, index=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True)
    unit = db.Column(db.String(32), nullable=True)

    cost_price = db.Column(db.Numeric(12, 2), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)

    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    expiry_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime, nullable=True)

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    @property
    def is_main(self) -> bool:
        return self.store_id is None

    @property
    def is_variant(self) -> bool:
        return self.store_id is not None

    @property
    def is_live(self) -> bool:
        """Active and not soft-deleted."""
        return bool(self.active) and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} store_id={self.store_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "mirror_id": self.mirror_id,
            "name": self.name,
            "sku": self.sku,
            "barcode": self.barcode,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "cost_price": _money(self.cost_price),
            "price": _money(self.price),
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "store_id": self.store_id,
            "active": self.active,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    quantity is always >= 0; direction is carried by movement_type.
    Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity_non_negative"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"{self.movement_type} {self.quantity} ref={self.reference!r}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference": self.reference,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
