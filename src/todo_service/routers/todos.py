from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..models import TodoStatus
from ..repositories import ListQuery, normalize_sort
from ..schemas import ResequenceResult, TodoCreate, TodoOut, TodoStats, TodoUpdate
from ..service import TodoService
from ..utils import pagination_envelope

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)

NOT_FOUND = "Todo not found"


class PaginationEnvelope(BaseModel):
    """
    Envelope for paginated list responses.
    """
    items: List[TodoOut] = Field(..., description="List of Todo items")
    total: int = Field(..., description="Total number of items matching the query")
    limit: int = Field(..., description="Limit applied to the query")
    offset: int = Field(..., description="Offset applied to the query")


# PUBLIC_INTERFACE
def get_service(request: Request) -> TodoService:
    """
    Dependency returning the TodoService built at application startup.
    """
    return request.app.state.todo_service


def _found(item):
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return TodoOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description=(
        "Create a new active Todo. Without a priority it is appended to the end of the "
        "active list; with one it is inserted there and later todos move down."
    ),
    responses={
        201: {"description": "Todo created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_todo(payload: TodoCreate, service: TodoService = Depends(get_service)) -> TodoOut:
    created = service.create_todo(payload)
    return TodoOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=PaginationEnvelope,
    summary="List Todos",
    description=(
        "List todos with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- limit: max number of items to return (0..1000)\n"
        "- offset: number of items to skip (>=0)\n"
        "- status: filter by active, completed or archived\n"
        "- q: search query for title/description (substring match)\n"
        "- sort: one of created_at, updated_at, priority; prefix with '-' for descending\n"
        "- order: asc or desc (if provided, it overrides the direction in sort)\n\n"
        "Returns a pagination envelope with items and total count."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_todos(
    limit: int = Query(50, ge=0, le=1000, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    status_filter: Optional[TodoStatus] = Query(None, alias="status", description="Filter by status"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    sort: Optional[str] = Query(
        "-created_at",
        description="Sort by field: created_at, updated_at, priority; '-' prefix for descending",
    ),
    order: Optional[str] = Query(
        None, description="Override sort direction: 'asc' or 'desc'"
    ),
    service: TodoService = Depends(get_service),
) -> PaginationEnvelope:
    field, descending = normalize_sort(sort)
    if order:
        ord_norm = order.strip().lower()
        if ord_norm not in {"asc", "desc"}:
            raise HTTPException(status_code=400, detail="order must be 'asc' or 'desc'")
        descending = ord_norm == "desc"

    query = ListQuery(
        limit=limit,
        offset=offset,
        status=status_filter,
        search=q.strip() if q else None,
        sort=f"-{field}" if descending else field,
    )
    items, total = service.list_todos(query)
    envelope = pagination_envelope(items, total, query)
    return PaginationEnvelope(**envelope)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=TodoStats,
    summary="Todo Stats",
    description="Count todos per status.",
)
def todo_stats(service: TodoService = Depends(get_service)) -> TodoStats:
    return TodoStats(**service.get_stats())


# PUBLIC_INTERFACE
@router.post(
    "/resequence",
    response_model=ResequenceResult,
    summary="Resequence Active Priorities",
    description="Renumber active todos to 1..n, closing any gaps left by status changes.",
)
def resequence_todos(service: TodoService = Depends(get_service)) -> ResequenceResult:
    return ResequenceResult(**service.resequence_active_priorities())


# PUBLIC_INTERFACE
@router.delete(
    "/",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear Todos",
    description="Delete every Todo item.",
)
def clear_todos(service: TodoService = Depends(get_service)) -> None:
    service.clear_all_todos()
    return None


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get a single Todo item by ID.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(todo_id: int, service: TodoService = Depends(get_service)) -> TodoOut:
    return _found(service.get_todo(todo_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description=(
        "Partially update fields of a Todo item. A status set here is written as-is; "
        "a priority set on an active todo moves it within the active list."
    ),
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo not found"},
    },
)
def patch_todo(todo_id: int, payload: TodoUpdate, service: TodoService = Depends(get_service)) -> TodoOut:
    return _found(service.update_todo(todo_id, payload))


# PUBLIC_INTERFACE
@router.post(
    "/{todo_id}/toggle-completed",
    response_model=TodoOut,
    summary="Toggle Completed",
    description=(
        "Flip a todo between active and completed. The priority is kept while completed "
        "and restored on reactivation. Archived todos are returned unchanged."
    ),
    responses={
        200: {"description": "Todo toggled or left unchanged"},
        404: {"description": "Todo not found"},
    },
)
def toggle_completed(todo_id: int, service: TodoService = Depends(get_service)) -> TodoOut:
    return _found(service.toggle_completed(todo_id))


# PUBLIC_INTERFACE
@router.post(
    "/{todo_id}/toggle-archived",
    response_model=TodoOut,
    summary="Toggle Archived",
    description=(
        "Flip a todo between active and archived. Unarchived todos restart at priority 1. "
        "Completed todos are returned unchanged."
    ),
    responses={
        200: {"description": "Todo toggled or left unchanged"},
        404: {"description": "Todo not found"},
    },
)
def toggle_archived(todo_id: int, service: TodoService = Depends(get_service)) -> TodoOut:
    return _found(service.toggle_archived(todo_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Todo",
    description="Delete a Todo item by ID. Deleting an active todo closes its gap in the active list.",
    responses={
        204: {"description": "Todo deleted"},
        404: {"description": "Todo not found"},
    },
)
def delete_todo(todo_id: int, service: TodoService = Depends(get_service)) -> None:
    if not service.delete_todo(todo_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return None
