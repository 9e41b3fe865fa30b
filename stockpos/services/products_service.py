"""
Product catalog service.

Catalog edits that change Product.stock go through the stock service so
the movement log stays in step with the stored quantity:
- create with stock > 0 appends an opening IN movement
- update with a different stock appends an IN/OUT movement of the difference
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, SaleItem
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT
from ..validation import ConflictError, NotFoundError
from . import stock_service
from .concurrency import begin_write, run_with_retry
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "category",
    "image_path",
    "buy_price",
    "selling_price",
}

OPENING_STOCK_NOTE = "Opening stock"


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> dict:
    """
    Product listing, newest first.

    search matches name, SKU or description (case-insensitive);
    category is a substring match.
    """
    query = Product.query
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.sku.ilike(pattern),
            Product.description.ilike(pattern),
        ))
    if category:
        query = query.filter(Product.category.ilike(f"%{category.strip()}%"))

    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    rows, pagination = paginate(query, page=page, limit=limit, default_limit=10)
    return {
        "products": [p.to_dict() for p in rows],
        "pagination": pagination,
    }


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _ensure_sku_available(sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("SKU already exists")


def _flush_unique_sku() -> None:
    # UNIQUE(sku) rejects a writer that passed _ensure_sku_available concurrently
    try:
        db.session.flush()
    except IntegrityError:
        raise ConflictError("SKU already exists")


def create_product(*, patch: dict, user_id: int | None = None) -> dict:
    """
    Create a product from a validated patch dict.

    Opening stock is recorded as an IN movement in the same transaction.

    Raises:
        ConflictError: If SKU already exists
    """
    def _op():
        try:
            begin_write()
            _ensure_sku_available(patch["sku"])

            p = Product(stock=0)
            apply_product_patch(p, patch)
            db.session.add(p)
            _flush_unique_sku()

            opening = patch.get("stock") or 0
            if opening > 0:
                stock_service.apply_stock_delta(p, opening)
                stock_service.record_movement(
                    product=p,
                    movement_type=MOVEMENT_IN,
                    qty=opening,
                    quantity_delta=opening,
                    user_id=user_id,
                    note=OPENING_STOCK_NOTE,
                )

            db.session.flush()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info("Product %s created: sku=%s stock=%s", p.id, p.sku, p.stock)
        return p.to_dict()

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict, user_id: int | None = None) -> dict:
    """
    Update a product.

    A changed stock value is applied under the product lock and logged as
    an IN or OUT movement of the difference.

    Raises:
        NotFoundError: If product does not exist
        ConflictError: If the new SKU belongs to another product
    """
    def _op():
        try:
            begin_write()
            p = stock_service.get_product_for_update(product_id)

            if "sku" in patch and patch["sku"] != p.sku:
                _ensure_sku_available(patch["sku"], exclude_id=p.id)

            apply_product_patch(p, patch)

            new_stock = patch.get("stock")
            if new_stock is not None and new_stock != p.stock:
                old_stock = p.stock
                delta = new_stock - old_stock
                stock_service.apply_stock_delta(p, delta)
                stock_service.record_movement(
                    product=p,
                    movement_type=MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
                    qty=abs(delta),
                    quantity_delta=delta,
                    user_id=user_id,
                    note=f"Stock corrected from {old_stock} to {new_stock}",
                )

            _flush_unique_sku()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return p.to_dict()

    return run_with_retry(_op)


def delete_product(*, product_id: int) -> None:
    """
    Hard-delete a product together with its movements and count lines.

    Raises:
        NotFoundError: If product does not exist
        ConflictError: If any sale references the product
    """
    def _op():
        try:
            begin_write()
            p = stock_service.get_product_for_update(product_id)

            in_sales = db.session.query(SaleItem.id).filter_by(product_id=p.id).first()
            if in_sales is not None:
                raise ConflictError("Cannot delete product that has sales transactions")

            db.session.delete(p)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info("Product %s deleted", product_id)

    return run_with_retry(_op)
