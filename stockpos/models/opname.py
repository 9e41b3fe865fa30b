from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


class StockOpname(db.Model):
    """
    Physical stock count session.

    Items snapshot the system quantity at count time. When the count was
    confirmed (adjusted=True), every non-zero diff was posted as an ADJUST
    movement and the product stock was set to the counted quantity.
    """
    __tablename__ = "stock_opnames"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    adjusted = db.Column(db.Boolean, nullable=False, default=False)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "performedBy": self.performed_by,
            "date": to_utc_z(self.date),
            "adjusted": self.adjusted,
            "user": self.user.to_summary() if self.user else None,
            "items": [item.to_dict() for item in self.items],
        }


class StockOpnameItem(db.Model):
    """Counted vs. system quantity for one product in a count session."""
    __tablename__ = "stock_opname_items"
    __table_args__ = (
        db.UniqueConstraint("stock_opname_id", "product_id", name="uq_stock_opname_items_opname_product"),
        db.CheckConstraint("counted_qty >= 0", name="ck_stock_opname_items_counted_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_opname_id = db.Column(db.Integer, db.ForeignKey("stock_opnames.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    counted_qty = db.Column(db.Integer, nullable=False)
    system_qty = db.Column(db.Integer, nullable=False)
    diff = db.Column(db.Integer, nullable=False)

    stock_opname = db.relationship(
        "StockOpname",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="StockOpnameItem.id"),
    )
    product = db.relationship(
        "Product",
        backref=db.backref("opname_items", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stockOpnameId": self.stock_opname_id,
            "productId": self.product_id,
            "countedQty": self.counted_qty,
            "systemQty": self.system_qty,
            "diff": self.diff,
            "product": self.product.to_summary() if self.product else None,
        }
