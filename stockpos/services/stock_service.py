"""
stockpos stock invariants (authoritative)

Stock model:
- Product.stock is the stored quantity on hand.
- Every write to Product.stock appends a StockMovement in the same DB
  transaction, carrying the signed quantity_delta of that write.
- Therefore Product.stock == SUM(StockMovement.quantity_delta) per product.
  reconcile_product() checks this.

Movement semantics:
- IN:      quantity_delta = +qty
- OUT:     quantity_delta = -qty, refused when stock < qty
- ADJUST:  manual ADJUST is additive (+qty); a stock opname ADJUST sets the
           counted quantity and records the signed difference.

Concurrency:
- Every core operation runs inside run_with_retry(), opens its write
  transaction with begin_write(), and re-reads product rows through
  lock_for_update() before checking stock.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_OUT
from ..time_utils import utcnow
from ..validation import ConflictError, MovementRequest, NotFoundError
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pagination import paginate


class InsufficientStockError(ConflictError):
    """Raised when a write would take a product's stock below zero."""

    def __init__(self, product: Product, requested: int):
        super().__init__(
            f"Insufficient stock for {product.name}. Available: {product.stock}"
        )
        self.product_id = product.id
        self.product_name = product.name
        self.available = product.stock
        self.requested = requested

    @property
    def details(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "available": self.available,
            "requested": self.requested,
        }


def get_product_for_update(product_id: int) -> Product:
    """Load a product row under lock, or raise NotFoundError."""
    query = db.session.query(Product).filter_by(id=product_id)
    product = lock_for_update(query).first()
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    return product


def signed_delta(movement_type: str, qty: int) -> int:
    if movement_type == MOVEMENT_OUT:
        return -qty
    return qty


def record_movement(
    *,
    product: Product,
    movement_type: str,
    qty: int,
    quantity_delta: int,
    user_id: int | None,
    note: str | None = None,
    reference_type: str | None = None,
    reference_id=None,
) -> StockMovement:
    """
    Append one movement row. Does not touch Product.stock or commit.

    Callers apply the matching stock change in the same transaction.
    """
    movement = StockMovement(
        product=product,
        type=movement_type,
        qty=qty,
        quantity_delta=quantity_delta,
        note=note,
        reference_type=reference_type,
        reference_id=str(reference_id) if reference_id is not None else None,
        created_by=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def apply_stock_delta(product: Product, delta: int, *, requested: int | None = None) -> None:
    """
    Change Product.stock by delta, enforcing the stock floor.

    Maintains date_in (first time stock arrives) and date_out (last time
    stock leaves).
    """
    new_stock = product.stock + delta
    if new_stock < 0:
        current_app.logger.warning(
            "Stock check failed for product %s: available=%s requested=%s",
            product.id, product.stock, requested if requested is not None else -delta,
        )
        raise InsufficientStockError(product, requested if requested is not None else -delta)

    product.stock = new_stock
    now = utcnow()
    if delta < 0:
        product.date_out = now
    elif delta > 0 and product.date_in is None:
        product.date_in = now


def create_manual_movement(request_obj: MovementRequest, *, user_id: int | None) -> StockMovement:
    """
    Record a manual IN/OUT/ADJUST movement and apply it to stock atomically.

    OUT is refused when it would exceed stock on hand. ADJUST adds qty.
    """
    def _op():
        try:
            begin_write()
            product = get_product_for_update(request_obj.product_id)

            delta = signed_delta(request_obj.type, request_obj.qty)
            apply_stock_delta(product, delta, requested=request_obj.qty)

            movement = record_movement(
                product=product,
                movement_type=request_obj.type,
                qty=request_obj.qty,
                quantity_delta=delta,
                user_id=user_id,
                note=request_obj.note,
                reference_type=request_obj.reference_type,
                reference_id=request_obj.reference_id,
            )
            db.session.flush()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Stock movement %s committed: product=%s type=%s delta=%s stock=%s",
            movement.id, product.id, movement.type, delta, product.stock,
        )
        return movement

    return run_with_retry(_op)


def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if movement is None:
        raise NotFoundError("Stock movement not found")
    return movement


def list_movements(
    *,
    page: int | None = None,
    limit: int | None = None,
    movement_type: str | None = None,
    product_id: int | None = None,
    start=None,
    end=None,
) -> dict:
    query = StockMovement.query
    if movement_type:
        query = query.filter(StockMovement.type == movement_type)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if start is not None:
        query = query.filter(StockMovement.created_at >= start)
    if end is not None:
        query = query.filter(StockMovement.created_at <= end)

    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    rows, pagination = paginate(query, page=page, limit=limit, default_limit=20)
    return {
        "movements": [m.to_dict() for m in rows],
        "pagination": pagination,
    }


def movement_total(product_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity_delta), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)


def reconcile_product(product_id: int) -> dict:
    """Compare stored stock with the movement log for one product."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product with ID {product_id} not found")
    total = movement_total(product_id)
    return {
        "productId": product.id,
        "sku": product.sku,
        "stock": product.stock,
        "movementTotal": total,
        "consistent": product.stock == total,
    }


def reconcile_all() -> list[dict]:
    """Reconciliation rows for every product, in id order."""
    totals = dict(
        db.session.query(
            StockMovement.product_id,
            func.coalesce(func.sum(StockMovement.quantity_delta), 0),
        ).group_by(StockMovement.product_id).all()
    )
    results = []
    for product in Product.query.order_by(Product.id.asc()).all():
        total = int(totals.get(product.id, 0))
        results.append({
            "productId": product.id,
            "sku": product.sku,
            "stock": product.stock,
            "movementTotal": total,
            "consistent": product.stock == total,
        })
    return results
