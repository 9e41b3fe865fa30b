from __future__ import annotations

import secrets
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.inventory import MOVEMENT_OUT, REFERENCE_SALE
from ..models.sales import PAYMENT_CASH
from ..time_utils import utcnow
from ..validation import CheckoutRequest, ConflictError, NotFoundError
from . import stock_service
from .concurrency import begin_write, run_with_retry
from .pagination import paginate


def _invoice_candidate(now: datetime) -> str:
    prefix = current_app.config.get("INVOICE_PREFIX", "KAWOK")
    suffix = str(secrets.randbelow(10000)).zfill(4)
    return f"{prefix}-{now:%Y%m%d}-{suffix}"


def generate_invoice_number(now: datetime | None = None) -> str:
    """
    Pick an invoice number PREFIX-YYYYMMDD-NNNN not used by any sale.

    Must run inside the checkout write transaction so the existence check
    and the insert see the same state.
    """
    now = now or utcnow()
    attempts = current_app.config.get("INVOICE_NUMBER_ATTEMPTS", 5)
    for _ in range(attempts):
        candidate = _invoice_candidate(now)
        exists = db.session.query(Sale.id).filter_by(invoice_no=candidate).first()
        if exists is None:
            return candidate
    raise ConflictError("Could not allocate a unique invoice number, please retry")


def _lock_products(product_ids) -> dict[int, Product]:
    # Fixed lock order so two checkouts over the same products cannot deadlock
    locked = {}
    for product_id in sorted(product_ids):
        locked[product_id] = stock_service.get_product_for_update(product_id)
    return locked


def _validate_on_hand(products: dict[int, Product], request_obj: CheckoutRequest) -> None:
    product_totals: dict[int, int] = {}
    for line in request_obj.items:
        product_totals[line.product_id] = product_totals.get(line.product_id, 0) + line.qty

    for product_id, qty in product_totals.items():
        product = products[product_id]
        if product.stock < qty:
            current_app.logger.warning(
                "Checkout rejected: product %s available=%s requested=%s",
                product.id, product.stock, qty,
            )
            raise stock_service.InsufficientStockError(product, qty)


def checkout(request_obj: CheckoutRequest, *, user_id: int) -> Sale:
    """
    Post a sale atomically.

    Locks every referenced product, re-checks stock, then writes the sale,
    its items, one OUT movement per item and the stock decrements in one
    transaction. Any failure rolls everything back.

    Not idempotent: submitting the same cart twice records two sales.
    """
    def _op():
        try:
            begin_write()
            products = _lock_products({line.product_id for line in request_obj.items})
            _validate_on_hand(products, request_obj)

            total_amount = request_obj.total_amount
            paid_amount = None
            change_amount = None
            if request_obj.payment_method == PAYMENT_CASH:
                paid_amount = request_obj.paid_amount
                change_amount = paid_amount - total_amount

            now = utcnow()
            sale = Sale(
                invoice_no=generate_invoice_number(now),
                total_amount=total_amount,
                payment_method=request_obj.payment_method,
                paid_amount=paid_amount,
                change_amount=change_amount,
                created_by=user_id,
                created_at=now,
            )
            db.session.add(sale)
            try:
                db.session.flush()
            except IntegrityError:
                raise ConflictError("Invoice number already in use, please retry")

            for line in request_obj.items:
                product = products[line.product_id]
                db.session.add(SaleItem(
                    sale=sale,
                    product_id=product.id,
                    qty=line.qty,
                    unit_price=line.unit_price,
                    subtotal=line.subtotal,
                ))
                stock_service.apply_stock_delta(product, -line.qty, requested=line.qty)
                stock_service.record_movement(
                    product=product,
                    movement_type=MOVEMENT_OUT,
                    qty=line.qty,
                    quantity_delta=-line.qty,
                    user_id=user_id,
                    note=f"Sale - {sale.invoice_no}",
                    reference_type=REFERENCE_SALE,
                    reference_id=sale.id,
                )

            db.session.flush()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Sale %s committed: invoice=%s items=%s total=%s",
            sale.id, sale.invoice_no, len(request_obj.items), total_amount,
        )
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(*, page: int | None = None, limit: int | None = None, start=None, end=None) -> dict:
    query = Sale.query
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    rows, pagination = paginate(query, page=page, limit=limit, default_limit=10)
    return {
        "sales": [s.to_dict() for s in rows],
        "pagination": pagination,
    }
