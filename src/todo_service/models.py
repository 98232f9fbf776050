from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional, Tuple, TypedDict

TodoStatus = Literal["active", "completed", "archived"]

TODO_STATUSES: Tuple[str, ...] = ("active", "completed", "archived")


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A lightweight domain model representing a Todo item for non-ORM storage
    backends.

    Fields:
    - id: Unique integer identifier, assigned by the storage adapter
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - status: One of active, completed, archived
    - priority: Ordering key among active todos; suspended (kept or null) otherwise
    - due_date: Optional due datetime (normalized to datetime in schemas)
    - created_at: Creation timestamp, stamped by the service layer
    - updated_at: Last update timestamp, refreshed by the service layer
    """

    id: int
    title: str
    description: Optional[str]
    status: TodoStatus
    priority: Optional[int]
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime


def is_active(todo: TodoEntity) -> bool:
    return todo["status"] == "active"
