"""
Todo service: reads records from a repository, applies the rules in
`todo_service.rules` and writes the result back.

Every operation that writes runs inside `Repository.transaction()`, so a
failure part way through leaves the store as it was.

The service is the only place that stamps `created_at`/`updated_at` and the
only place that rewrites other todos' priorities (when inserting, moving,
deleting or resequencing).
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import rules
from .models import TODO_STATUSES, TodoEntity, TodoStatus, is_active
from .repositories import ListQuery, Repository
from .schemas import TodoCreate, TodoUpdate

logger = logging.getLogger(__name__)


def _priority_order(todo: TodoEntity) -> Tuple[int, int, int]:
    # Todos without a priority go after every prioritized one
    p = todo["priority"]
    return (0 if p is not None else 1, p or 0, todo["id"])


# PUBLIC_INTERFACE
class TodoService:
    """
    Create, update, toggle and delete todos against an injected repository.

    Lookups that miss return None (or False for delete) rather than raising.
    """

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    def _now(self) -> datetime:
        return datetime.now()

    def _apply_priorities(self, changes: rules.PriorityChanges, now: datetime, skip: Optional[int] = None) -> None:
        for todo_id, priority in changes.items():
            if todo_id == skip:
                continue
            self.repository.update(todo_id, {"priority": priority, "updated_at": now})

    def get_todo(self, todo_id: int) -> Optional[TodoEntity]:
        return self.repository.get(todo_id)

    def get_all_todos(self) -> List[TodoEntity]:
        """Return every todo ordered by priority, then id."""
        return sorted(self.repository.all(), key=_priority_order)

    def list_todos(self, query: Optional[ListQuery] = None) -> Tuple[List[TodoEntity], int]:
        return self.repository.list(query)

    def get_todos_by_status(self, status: TodoStatus) -> List[TodoEntity]:
        """Active todos come back in priority order, the others in creation (id) order."""
        todos = [t for t in self.repository.all() if t["status"] == status]
        key: Callable[[TodoEntity], Any] = _priority_order if status == "active" else (lambda t: t["id"])
        return sorted(todos, key=key)

    def get_active_todos(self) -> List[TodoEntity]:
        return self.get_todos_by_status("active")

    def get_completed_todos(self) -> List[TodoEntity]:
        return self.get_todos_by_status("completed")

    def get_archived_todos(self) -> List[TodoEntity]:
        return self.get_todos_by_status("archived")

    def create_todo(self, data: TodoCreate) -> TodoEntity:
        """
        Insert a new active todo.

        The requested priority is clamped to the end of the active list, and
        active todos at or after it move down one place.
        """
        now = self._now()
        with self.repository.transaction():
            todos = self.repository.all()
            priority = rules.insert_position(todos, data.priority)
            self._apply_priorities(rules.bump_from(todos, priority), now)

            created = self.repository.insert(
                {
                    "title": data.title,
                    "description": data.description,
                    "status": "active",
                    "priority": priority,
                    "due_date": data.due_date,
                    "created_at": now,
                    "updated_at": now,
                }
            )
        logger.info("Created todo %s at priority %s", created["id"], priority)
        return created

    def update_todo(self, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        """
        Apply a partial update.

        A status set here is written as-is, with no priority bookkeeping. A
        priority set on a todo that is (or becomes) active moves it within the
        active list; on an inactive todo the value is stored as given.
        """
        with self.repository.transaction():
            return self._update_todo(todo_id, data)

    def _update_todo(self, todo_id: int, data: TodoUpdate) -> Optional[TodoEntity]:
        current = self.repository.get(todo_id)
        if current is None:
            return None

        fields = data.model_fields_set
        now = self._now()
        changes: Dict[str, Any] = {}

        if data.title is not None:
            changes["title"] = data.title
        # description and due_date may be explicitly cleared with null
        if "description" in fields:
            changes["description"] = data.description
        if "due_date" in fields:
            changes["due_date"] = data.due_date
        if data.status is not None:
            changes["status"] = data.status

        status = changes.get("status", current["status"])
        if data.priority is not None and status == "active":
            candidate = current.copy()
            candidate["status"] = "active"
            if not is_active(current) or current["priority"] is None:
                candidate["priority"] = data.priority
            others = [t for t in self.repository.all() if t["id"] != todo_id]
            moves = rules.move_to([*others, candidate], todo_id, data.priority)
            self._apply_priorities(moves, now, skip=todo_id)
            changes["priority"] = moves.get(todo_id, candidate["priority"])
        elif data.priority is not None:
            changes["priority"] = data.priority
        elif status == "active" and current["priority"] is None:
            # An active todo always carries a priority
            changes["priority"] = rules.next_priority(self.repository.all())

        changes["updated_at"] = now
        updated = self.repository.update(todo_id, changes)
        logger.debug("Updated todo %s fields=%s", todo_id, sorted(changes))
        return updated

    def _toggle(self, todo_id: int, rule: Callable[[TodoEntity], TodoEntity]) -> Optional[TodoEntity]:
        with self.repository.transaction():
            current = self.repository.get(todo_id)
            if current is None:
                logger.debug("%s: todo %s not found", rule.__name__, todo_id)
                return None

            result = rule(current)
            if not rules.transition_applied(current, result):
                logger.debug("%s: todo %s is %s, nothing to do", rule.__name__, todo_id, current["status"])
                return current

            logger.debug(
                "%s: todo %s %s -> %s (priority %s -> %s)",
                rule.__name__,
                todo_id,
                current["status"],
                result["status"],
                current["priority"],
                result["priority"],
            )
            return self.repository.update(
                todo_id,
                {"status": result["status"], "priority": result["priority"], "updated_at": self._now()},
            )

    def toggle_completed(self, todo_id: int) -> Optional[TodoEntity]:
        """Flip active <-> completed, restoring the priority on the way back."""
        return self._toggle(todo_id, rules.toggle_completed)

    def toggle_archived(self, todo_id: int) -> Optional[TodoEntity]:
        """Flip active <-> archived; unarchived todos restart at priority 1."""
        return self._toggle(todo_id, rules.toggle_archived)

    def delete_todo(self, todo_id: int) -> bool:
        """Delete a todo; removing an active one closes the hole it leaves in the active list."""
        with self.repository.transaction():
            current = self.repository.get(todo_id)
            if current is None:
                return False
            if not self.repository.delete(todo_id):
                return False

            if is_active(current) and current["priority"] is not None:
                self._apply_priorities(rules.close_gap(self.repository.all(), current["priority"]), self._now())
        logger.info("Deleted todo %s", todo_id)
        return True

    def resequence_active_priorities(self) -> Dict[str, Any]:
        """Renumber the active list to 1..n and report how many todos were out of place."""
        with self.repository.transaction():
            changes = rules.resequence(self.repository.all())
            self._apply_priorities(changes, self._now())
        if changes:
            logger.info("Resequenced %d active todo(s)", len(changes))
        return {"resequenced": bool(changes), "gaps": len(changes)}

    def get_stats(self) -> Dict[str, int]:
        counts = Counter(t["status"] for t in self.repository.all())
        stats = {status: counts.get(status, 0) for status in TODO_STATUSES}
        stats["total"] = sum(counts.values())
        return stats

    def clear_all_todos(self) -> None:
        self.repository.clear()
        logger.info("Cleared all todos")
