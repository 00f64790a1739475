from __future__ import annotations

from ..extensions import db
from cafestock.time_utils import to_utc_z, utcnow


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_ADJUST = "adjust"
MOVEMENT_KINDS = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST)


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to a tenant via tenant_id.
    SKUs are unique within a tenant: UniqueConstraint("tenant_id", "sku").

    No quantity column: stock on hand is derived from StockMovement rows
    (see services/stock_service.py).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32), nullable=False)
    min_qty = db.Column(db.Float, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "min_qty": self.min_qty,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger entry.

    qty is always the signed contribution of an 'adjust' row, and the
    positive magnitude of an 'in' or 'out' row (direction comes from kind).
    Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_tenant_product", "tenant_id", "product_id"),
        db.Index("ix_movements_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)
    qty = db.Column(db.Float, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} kind={self.kind} qty={self.qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "kind": self.kind,
            "qty": self.qty,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
