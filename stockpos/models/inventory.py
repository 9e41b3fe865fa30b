from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST)

REFERENCE_SALE = "SALE"
REFERENCE_STOCK_OPNAME = "STOCK_OPNAME"


class StockMovement(db.Model):
    """
    Append-only movement log.

    qty is the positive quantity the user sees; quantity_delta is the signed
    effect on Product.stock (IN: +qty, OUT: -qty, manual ADJUST: +qty,
    opname ADJUST: counted - system). Rows are never updated or deleted
    except when their product is hard-deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_stock_movements_qty_positive"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship(
        "Product",
        backref=db.backref("movements", lazy=True, cascade="all, delete-orphan"),
    )
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<StockMovement id={self.id} product_id={self.product_id} type={self.type} delta={self.quantity_delta}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "type": self.type,
            "qty": self.qty,
            "quantityDelta": self.quantity_delta,
            "note": self.note,
            "referenceType": self.reference_type,
            "referenceId": self.reference_id,
            "createdBy": self.created_by,
            "createdAt": to_utc_z(self.created_at),
            "product": self.product.to_summary() if self.product else None,
            "user": self.user.to_summary() if self.user else None,
        }
