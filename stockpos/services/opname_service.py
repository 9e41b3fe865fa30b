"""
Stock opname (physical count) service.

A count is single-shot: the header, every counted line and, when the
caller confirms the adjustment, the ADJUST movements and stock updates are
written in one transaction. A missing product aborts the whole count.

Each line snapshots system_qty = stock at count time and diff =
counted - system. Confirmed non-zero diffs set stock to the counted
quantity (absolute, unlike a manual ADJUST movement) and are logged as an
ADJUST movement with qty=|diff| and quantity_delta=diff.
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import StockOpname, StockOpnameItem
from ..models.inventory import MOVEMENT_ADJUST, REFERENCE_STOCK_OPNAME
from ..time_utils import utcnow
from ..validation import NotFoundError, OpnameRequest
from . import stock_service
from .concurrency import begin_write, run_with_retry
from .pagination import paginate


def create_opname(request_obj: OpnameRequest, *, user_id: int) -> StockOpname:
    """
    Record a stock count and, if confirmed, reconcile stock to it.

    Raises:
        NotFoundError: a counted product does not exist (nothing persisted)
    """
    def _op():
        try:
            begin_write()
            now = utcnow()
            opname = StockOpname(
                performed_by=user_id,
                date=now,
                adjusted=request_obj.confirm_adjustment,
            )
            db.session.add(opname)
            db.session.flush()

            adjustments = 0
            for line in request_obj.items:
                product = stock_service.get_product_for_update(line.product_id)
                system_qty = product.stock
                diff = line.counted_qty - system_qty

                db.session.add(StockOpnameItem(
                    stock_opname=opname,
                    product_id=product.id,
                    counted_qty=line.counted_qty,
                    system_qty=system_qty,
                    diff=diff,
                ))

                if request_obj.confirm_adjustment and diff != 0:
                    stock_service.record_movement(
                        product=product,
                        movement_type=MOVEMENT_ADJUST,
                        qty=abs(diff),
                        quantity_delta=diff,
                        user_id=user_id,
                        note=f"Stock opname #{opname.id}: system {system_qty}, counted {line.counted_qty}",
                        reference_type=REFERENCE_STOCK_OPNAME,
                        reference_id=opname.id,
                    )
                    stock_service.apply_stock_delta(product, diff)
                    adjustments += 1

            db.session.flush()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(
            "Stock opname %s committed: items=%s adjusted=%s adjustments=%s",
            opname.id, len(request_obj.items), opname.adjusted, adjustments,
        )
        return opname

    return run_with_retry(_op)


def get_opname(opname_id: int) -> StockOpname:
    opname = db.session.get(StockOpname, opname_id)
    if opname is None:
        raise NotFoundError("Stock opname not found")
    return opname


def list_opnames(*, page: int | None = None, limit: int | None = None, start=None, end=None) -> dict:
    query = StockOpname.query
    if start is not None:
        query = query.filter(StockOpname.date >= start)
    if end is not None:
        query = query.filter(StockOpname.date <= end)

    query = query.order_by(StockOpname.date.desc(), StockOpname.id.desc())
    rows, pagination = paginate(query, page=page, limit=limit, default_limit=10)
    return {
        "stockOpnames": [o.to_dict() for o in rows],
        "pagination": pagination,
    }
