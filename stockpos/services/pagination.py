from __future__ import annotations


MAX_PAGE_SIZE = 100


def paginate(query, *, page: int | None, limit: int | None, default_limit: int = 10):
    """
    Apply page/limit to a query.

    Returns (rows, pagination) where pagination is
    {"page", "limit", "total", "pages"} and pages = ceil(total / limit).
    """
    limit = min(limit or default_limit, MAX_PAGE_SIZE)
    limit = max(limit, 1)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    pages = (total + limit - 1) // limit

    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": pages,
    }
