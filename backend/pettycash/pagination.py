from __future__ import annotations


DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def paginate(query, page: int | None = None, per_page: int | None = None, serialize=None) -> dict:
    """
    Listing payload shared by the list endpoints.

    If page is None, returns all items without pagination metadata.
    """
    serialize = serialize or (lambda obj: obj.to_dict())

    if page is None:
        rows = query.all()
        return {
            "items": [serialize(r) for r in rows],
            "count": len(rows),
        }

    per_page = min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE)
    page = max(page, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
