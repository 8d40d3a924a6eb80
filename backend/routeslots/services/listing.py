"""
Listing helpers: paging window, order whitelist and page metadata.

Callers pass either page/page_size or offset/limit; offset/limit wins when both are set.
"""
from collections import namedtuple

from routeslots.config import settings

PageWindow = namedtuple("PageWindow", ["offset", "limit"])


def resolve_window(
    page: int | None = None,
    page_size: int | None = None,
    offset: int | None = None,
    limit: int | None = None,
) -> PageWindow:
    max_size = settings.max_page_size
    if offset is not None or limit is not None:
        size = min(max(1, limit or settings.default_page_size), max_size)
        return PageWindow(max(0, offset or 0), size)
    size = min(max(1, page_size or settings.default_page_size), max_size)
    current = max(1, page or 1)
    return PageWindow((current - 1) * size, size)


def order_clause(model, whitelist, order_by: str | None, order_dir: str | None, default: tuple[str, str]):
    """Whitelisted column ordering; unknown columns fall back to default. Ties broken by id."""
    column_name = order_by if order_by in whitelist else default[0]
    direction = (order_dir or default[1]).lower()
    column = getattr(model, column_name)
    primary = column.asc() if direction == "asc" else column.desc()
    if column_name == "id":
        return [primary]
    return [primary, model.id.asc()]


def page_meta(total: int, window: PageWindow) -> dict:
    next_offset = window.offset + window.limit
    return {
        "total": total,
        "offset": window.offset,
        "limit": window.limit,
        "page": window.offset // window.limit + 1,
        "page_size": window.limit,
        "total_pages": (total + window.limit - 1) // window.limit if total else 0,
        "has_next": next_offset < total,
        "next_offset": next_offset if next_offset < total else None,
    }


def paginate(query, window: PageWindow) -> tuple[list, dict]:
    total = query.order_by(None).count()
    rows = query.offset(window.offset).limit(window.limit).all()
    return rows, page_meta(total, window)
