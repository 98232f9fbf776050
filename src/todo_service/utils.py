from __future__ import annotations

from typing import Any, Dict, Iterable

from .models import TodoEntity
from .repositories import ListQuery
from .schemas import TodoOut


# PUBLIC_INTERFACE
def pagination_envelope(items: Iterable[TodoEntity], total: int, query: ListQuery) -> Dict[str, Any]:
    """
    Build the standard pagination envelope for the todo list endpoint.

    Args:
        items: Entities on the current page.
        total: Number of todos matching the query, ignoring pagination.
        query: The query that produced the page; its limit/offset are echoed back.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    return {
        "items": [TodoOut(**item) for item in items],  # type: ignore[arg-type]
        "total": int(total),
        "limit": max(query.limit, 0),
        "offset": max(query.offset, 0),
    }
