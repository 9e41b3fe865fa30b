from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


PAYMENT_CASH = "CASH"
PAYMENT_TRANSFER = "TRANSFER"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_TRANSFER)


class Sale(db.Model):
    """
    Completed sale. Immutable after checkout.

    paid_amount and change_amount are only set for CASH sales.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "KAWOK-20240131-0042")
    invoice_no = db.Column(db.String(64), nullable=False, unique=True, index=True)

    total_amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)
    paid_amount = db.Column(db.Integer, nullable=True)
    change_amount = db.Column(db.Integer, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoiceNo": self.invoice_no,
            "totalAmount": self.total_amount,
            "paymentMethod": self.payment_method,
            "paidAmount": self.paid_amount,
            "changeAmount": self.change_amount,
            "createdBy": self.created_by,
            "createdAt": to_utc_z(self.created_at),
            "user": self.user.to_summary() if self.user else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_sale_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, cascade="all, delete-orphan", order_by="SaleItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "saleId": self.sale_id,
            "productId": self.product_id,
            "qty": self.qty,
            "unitPrice": self.unit_price,
            "subtotal": self.subtotal,
            "product": self.product.to_summary() if self.product else None,
        }
