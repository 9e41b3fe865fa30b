from __future__ import annotations

import csv
import io
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Sale, SaleItem, StockMovement
from ..time_utils import end_of_day, start_of_day, start_of_month, to_utc_z, utcnow

REPORT_SALES = "sales"
REPORT_STOCK = "stock"
REPORT_TOP_SELLING = "top-selling"
REPORT_STOCK_MOVEMENTS = "stock-movements"
REPORT_TYPES = (REPORT_SALES, REPORT_STOCK, REPORT_TOP_SELLING, REPORT_STOCK_MOVEMENTS)

TOP_SELLING_LIMIT = 20
DASHBOARD_TOP_SELLING_LIMIT = 5
DASHBOARD_RECENT_SALES = 5
DASHBOARD_LOW_STOCK_LIMIT = 10


class ReportError(ValueError):
    """Raised when report generation fails."""
    pass


def _low_stock_threshold() -> int:
    return current_app.config.get("LOW_STOCK_THRESHOLD", 10)


def _date_filtered(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


def sales_report(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    sales = _date_filtered(Sale.query, Sale.created_at, start, end).order_by(
        Sale.created_at.desc(), Sale.id.desc()
    ).all()

    total_amount = sum(s.total_amount for s in sales)
    total_transactions = len(sales)
    total_items = sum(item.qty for s in sales for item in s.items)

    payment_method_stats: dict[str, int] = {}
    for s in sales:
        payment_method_stats[s.payment_method] = payment_method_stats.get(s.payment_method, 0) + 1

    return {
        "summary": {
            "totalAmount": total_amount,
            "totalTransactions": total_transactions,
            "totalItems": total_items,
            "paymentMethodStats": payment_method_stats,
            "averageTransaction": (
                round(total_amount / total_transactions, 2) if total_transactions else 0
            ),
        },
        "sales": [s.to_dict() for s in sales],
    }


def stock_report() -> dict:
    products = Product.query.order_by(Product.name.asc(), Product.id.asc()).all()
    threshold = _low_stock_threshold()

    category_stats: dict[str, dict] = {}
    for p in products:
        stats = category_stats.setdefault(
            p.category or "Uncategorized",
            {"count": 0, "totalStock": 0, "totalValue": 0},
        )
        stats["count"] += 1
        stats["totalStock"] += p.stock
        stats["totalValue"] += p.stock * p.selling_price

    rows = [p.to_dict() for p in products]
    low_stock = [row for row in rows if row["stock"] < threshold]
    out_of_stock = [row for row in rows if row["stock"] == 0]

    return {
        "summary": {
            "totalProducts": len(products),
            "totalStockValue": sum(p.stock * p.selling_price for p in products),
            "totalStockItems": sum(p.stock for p in products),
            "lowStockProducts": len(low_stock),
            "outOfStockProducts": len(out_of_stock),
            "categoryStats": category_stats,
        },
        "products": rows,
        "lowStockProducts": low_stock,
        "outOfStockProducts": out_of_stock,
    }


def _top_selling(*, start: datetime | None, end: datetime | None, limit: int) -> list[dict]:
    total_sold = func.coalesce(func.sum(SaleItem.qty), 0)
    query = db.session.query(
        SaleItem.product_id.label("product_id"),
        total_sold.label("total_sold"),
        func.coalesce(func.sum(SaleItem.subtotal), 0).label("total_revenue"),
        func.count(SaleItem.id).label("transaction_count"),
    ).join(Sale, Sale.id == SaleItem.sale_id)
    query = _date_filtered(query, Sale.created_at, start, end)

    rows = (
        query.group_by(SaleItem.product_id)
        .order_by(total_sold.desc(), SaleItem.product_id.asc())
        .limit(limit)
        .all()
    )
    products = {
        p.id: p
        for p in Product.query.filter(Product.id.in_([r.product_id for r in rows])).all()
    } if rows else {}

    results = []
    for row in rows:
        p = products.get(row.product_id)
        results.append({
            "id": row.product_id,
            "name": p.name if p else None,
            "sku": p.sku if p else None,
            "category": p.category if p else None,
            "sellingPrice": p.selling_price if p else None,
            "totalSold": int(row.total_sold or 0),
            "totalRevenue": int(row.total_revenue or 0),
            "transactionCount": int(row.transaction_count or 0),
        })
    return results


def top_selling_report(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    return {"topProducts": _top_selling(start=start, end=end, limit=TOP_SELLING_LIMIT)}


def stock_movements_report(*, start: datetime | None = None, end: datetime | None = None) -> dict:
    movements = _date_filtered(
        StockMovement.query, StockMovement.created_at, start, end
    ).order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()

    type_stats: dict[str, int] = {}
    for m in movements:
        type_stats[m.type] = type_stats.get(m.type, 0) + m.qty

    return {
        "summary": {
            "totalMovements": len(movements),
            "totalQuantity": sum(m.qty for m in movements),
            "typeStats": type_stats,
        },
        "movements": [m.to_dict() for m in movements],
    }


def build_report(report_type: str, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    if report_type == REPORT_SALES:
        return sales_report(start=start, end=end)
    if report_type == REPORT_STOCK:
        return stock_report()
    if report_type == REPORT_TOP_SELLING:
        return top_selling_report(start=start, end=end)
    if report_type == REPORT_STOCK_MOVEMENTS:
        return stock_movements_report(start=start, end=end)
    raise ReportError("Invalid report type")


def _csv_rows(report_type: str, data: dict) -> tuple[list[str], list[list]]:
    if report_type == REPORT_SALES:
        headers = ["Invoice No", "Date", "Payment Method", "Total Amount", "Items Count", "Cashier"]
        rows = [
            [
                s["invoiceNo"],
                s["createdAt"],
                s["paymentMethod"],
                s["totalAmount"],
                len(s["items"]),
                (s["user"] or {}).get("name", ""),
            ]
            for s in data["sales"]
        ]
    elif report_type == REPORT_STOCK:
        headers = ["SKU", "Name", "Category", "Stock", "Selling Price", "Stock Value"]
        rows = [
            [
                p["sku"],
                p["name"],
                p["category"] or "",
                p["stock"],
                p["sellingPrice"],
                p["stock"] * p["sellingPrice"],
            ]
            for p in data["products"]
        ]
    elif report_type == REPORT_TOP_SELLING:
        headers = ["SKU", "Name", "Category", "Total Sold", "Total Revenue", "Transaction Count"]
        rows = [
            [
                p["sku"],
                p["name"],
                p["category"] or "",
                p["totalSold"],
                p["totalRevenue"],
                p["transactionCount"],
            ]
            for p in data["topProducts"]
        ]
    elif report_type == REPORT_STOCK_MOVEMENTS:
        headers = ["Date", "Type", "Product", "Quantity", "Note", "User"]
        rows = [
            [
                m["createdAt"],
                m["type"],
                (m["product"] or {}).get("name", ""),
                m["qty"],
                m["note"] or "",
                (m["user"] or {}).get("name", ""),
            ]
            for m in data["movements"]
        ]
    else:
        raise ReportError("Invalid report type")
    return headers, rows


def report_to_csv(report_type: str, data: dict) -> str:
    """Header line, then one fully quoted line per row."""
    headers, rows = _csv_rows(report_type, data)
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(headers)
    csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n").writerows(rows)
    return buf.getvalue()


def report_filename(report_type: str, now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"report-{report_type}-{now:%Y-%m-%d}.csv"


def dashboard_summary(now: datetime | None = None) -> dict:
    now = now or utcnow()
    day_start = start_of_day(now)
    day_end = end_of_day(now)

    today_total, today_count = db.session.query(
        func.coalesce(func.sum(Sale.total_amount), 0),
        func.count(Sale.id),
    ).filter(Sale.created_at >= day_start, Sale.created_at < day_end).one()

    low_stock = (
        Product.query.filter(Product.stock < _low_stock_threshold())
        .order_by(Product.stock.asc(), Product.id.asc())
        .limit(DASHBOARD_LOW_STOCK_LIMIT)
        .all()
    )

    total_products, total_stock_value = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.stock * Product.selling_price), 0),
    ).one()

    recent_sales = (
        Sale.query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(DASHBOARD_RECENT_SALES)
        .all()
    )

    top_selling = [
        {
            "id": row["id"],
            "name": row["name"],
            "sku": row["sku"],
            "totalSold": row["totalSold"],
        }
        for row in _top_selling(start=start_of_month(now), end=None, limit=DASHBOARD_TOP_SELLING_LIMIT)
    ]

    return {
        "todayTotal": int(today_total or 0),
        "todayTransactionCount": int(today_count or 0),
        "lowStockProducts": [p.to_dict() for p in low_stock],
        "totalProducts": int(total_products or 0),
        "totalStockValue": int(total_stock_value or 0),
        "recentSales": [s.to_dict() for s in recent_sales],
        "topSellingProducts": top_selling,
        "generatedAt": to_utc_z(now),
    }
