from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from threading import RLock
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple

from .models import TodoEntity
from .settings import Settings

logger = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "updated_at", "priority"}
DEFAULT_SORT = "-created_at"

# Fields a caller may rewrite through Repository.update; id and created_at are fixed.
MUTABLE_FIELDS = {"title", "description", "status", "priority", "due_date", "updated_at"}


@dataclass(frozen=True)
class ListQuery:
    """
    Query parameters for listing todos.
    """
    limit: int = 50
    offset: int = 0
    status: Optional[str] = None
    search: Optional[str] = None
    sort: str = DEFAULT_SORT  # allowed: created_at, updated_at, priority; '-' prefix for descending


def normalize_sort(sort: Optional[str]) -> Tuple[str, bool]:
    """Split a sort expression into (field, descending), falling back to -created_at."""
    key = (sort or DEFAULT_SORT).strip().lower()
    descending = key.startswith("-")
    field = key[1:] if descending else key
    if field not in SORT_FIELDS:
        return "created_at", True
    return field, descending


# PUBLIC_INTERFACE
def check_changes(changes: Mapping[str, Any]) -> None:
    """Reject updates to fields outside MUTABLE_FIELDS."""
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"cannot update field(s): {', '.join(sorted(unknown))}")


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract storage contract for todo records.

    Repositories store and return records as given; ordering rules and
    timestamps belong to the service layer.
    """

    name: str = "abstract"

    @abstractmethod
    def all(self) -> List[TodoEntity]:
        """Return every stored TodoEntity ordered by id."""

    @abstractmethod
    def get(self, todo_id: int) -> Optional[TodoEntity]:
        """Return a TodoEntity by id, or None if not found."""

    @abstractmethod
    def insert(self, fields: Mapping[str, Any]) -> TodoEntity:
        """Store a new record, assign it an id and return it."""

    @abstractmethod
    def update(self, todo_id: int, changes: Mapping[str, Any]) -> Optional[TodoEntity]:
        """Overwrite the given fields of a record. Return the updated entity or None if not found."""

    @abstractmethod
    def delete(self, todo_id: int) -> bool:
        """Delete a TodoEntity by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        """
        Return a slice of TodoEntities and total count matching filters.
        - Supports limit/offset
        - Filter by status
        - Substring search across title and description (case-insensitive)
        - Sorting by created_at/updated_at/priority (asc/desc)
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every record."""

    @abstractmethod
    def transaction(self) -> Iterator[None]:
        """
        Context manager grouping several writes into one unit.

        Either every write inside the block is kept or, if the block raises,
        none of them are. Nested blocks join the outermost one.
        """


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[int, TodoEntity] = {}
        self._next_id = 1

    def _allocate_id(self) -> int:
        with self._lock:
            i = self._next_id
            self._next_id += 1
            return i

    def all(self) -> List[TodoEntity]:
        with self._lock:
            return [self._items[k].copy() for k in sorted(self._items)]

    def get(self, todo_id: int) -> Optional[TodoEntity]:
        with self._lock:
            item = self._items.get(todo_id)
            return None if item is None else item.copy()

    def insert(self, fields: Mapping[str, Any]) -> TodoEntity:
        entity: TodoEntity = {
            "id": self._allocate_id(),
            "title": fields["title"],
            "description": fields.get("description"),
            "status": fields.get("status", "active"),
            "priority": fields.get("priority"),
            "due_date": fields.get("due_date"),
            "created_at": fields["created_at"],
            "updated_at": fields["updated_at"],
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()

    def update(self, todo_id: int, changes: Mapping[str, Any]) -> Optional[TodoEntity]:
        check_changes(changes)
        with self._lock:
            existing = self._items.get(todo_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update(changes)  # type: ignore[typeddict-item]
            self._items[todo_id] = updated
            return updated.copy()

    def delete(self, todo_id: int) -> bool:
        with self._lock:
            return self._items.pop(todo_id, None) is not None

    def list(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        q = query or ListQuery()
        with self._lock:
            items: Iterable[TodoEntity] = list(self._items.values())

            if q.status is not None:
                items = [t for t in items if t["status"] == q.status]

            if q.search:
                s = q.search.lower()

                def matches(t: TodoEntity) -> bool:
                    title_ok = s in (t["title"] or "").lower()
                    desc_ok = s in t["description"].lower() if t["description"] else False
                    return title_ok or desc_ok

                items = [t for t in items if matches(t)]

            items = list(items)
            total = len(items)

            field, reverse = normalize_sort(q.sort)
            if field == "priority":
                # Todos without a priority sort after every prioritized one
                missing = float("inf") if not reverse else float("-inf")
                key = lambda t: (t["priority"] if t["priority"] is not None else missing, t["id"])  # noqa: E731
            else:
                key = lambda t: (t[field], t["id"])  # noqa: E731
            items_sorted = sorted(items, key=key, reverse=reverse)

            start = max(q.offset, 0)
            end = start + max(q.limit, 0)
            page = items_sorted[start:end]

            # Return copies to avoid external mutation
            return [t.copy() for t in page], total

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            # Entries are replaced on write, never mutated, so a shallow copy is a full snapshot
            items = dict(self._items)
            next_id = self._next_id
            try:
                yield
            except BaseException:
                self._items = items
                self._next_id = next_id
                logger.debug("Rolled back in-memory transaction")
                raise


# PUBLIC_INTERFACE
def build_repository(settings: Settings) -> Repository:
    """
    Build the storage backend named in settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository backed by settings.sqlite_db_path
    """
    if settings.persistence_backend == "memory":
        logger.info("Using in-memory todo storage")
        return InMemoryRepository()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite todo storage at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    raise ValueError(f"Unsupported persistence backend: {settings.persistence_backend!r}")
