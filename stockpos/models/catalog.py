from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK INVARIANT:
    Product.stock is the stored quantity on hand and must always equal
    SUM(StockMovement.quantity_delta) for the product. Only the stock
    services (checkout, manual movement, opname, catalog create/update)
    write this column, and each of them appends the matching movement
    in the same DB transaction.

    version_id is a SQLAlchemy version counter: an UPDATE issued from a
    stale read fails with StaleDataError and the operation is retried.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("selling_price >= 0", name="ck_products_selling_price_non_negative"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True, index=True)
    image_path = db.Column(db.String(512), nullable=True)

    # Whole currency units (e.g. rupiah)
    buy_price = db.Column(db.Integer, nullable=True)
    selling_price = db.Column(db.Integer, nullable=False)

    stock = db.Column(db.Integer, nullable=False, default=0)

    # First time the product was stocked / last time stock went out
    date_in = db.Column(db.DateTime(timezone=True), nullable=True)
    date_out = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "sku": self.sku}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "imagePath": self.image_path,
            "buyPrice": self.buy_price,
            "sellingPrice": self.selling_price,
            "stock": self.stock,
            "dateIn": to_utc_z(self.date_in),
            "dateOut": to_utc_z(self.date_out),
            "versionId": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
