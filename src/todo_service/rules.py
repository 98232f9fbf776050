"""
Status and priority rules for todos.

Everything here is pure: functions take todo records (or lists of them) and
return new values. Nothing reads from or writes to storage, and timestamps are
left to the caller.

Two toggles exist, one per status axis:

- toggle_completed flips active <-> completed. The priority is kept while the
  todo is completed and restored when it comes back.
- toggle_archived flips active <-> archived. The priority is kept while the todo
  is archived, but reactivation starts it over at priority 1.

A toggle on the other axis (completing an archived todo, archiving a completed
one) returns the todo unchanged.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import TodoEntity, TodoStatus, is_active

# Priority given to a todo when it re-enters the active list from the archive.
REACTIVATED_PRIORITY = 1

PriorityChanges = Dict[int, int]


def _with_status(todo: TodoEntity, status: TodoStatus, priority: Optional[int]) -> TodoEntity:
    result = todo.copy()
    result["status"] = status
    result["priority"] = priority
    return result


# PUBLIC_INTERFACE
def toggle_completed(todo: TodoEntity) -> TodoEntity:
    """
    Flip a todo between active and completed.

    Archived todos are returned unchanged; the archived axis is never touched.
    """
    if todo["status"] == "active":
        return _with_status(todo, "completed", todo["priority"])
    if todo["status"] == "completed":
        restored = todo["priority"] if todo["priority"] is not None else REACTIVATED_PRIORITY
        return _with_status(todo, "active", restored)
    return todo.copy()


# PUBLIC_INTERFACE
def toggle_archived(todo: TodoEntity) -> TodoEntity:
    """
    Flip a todo between active and archived.

    Unarchiving resets the priority to 1 instead of restoring it. Completed
    todos are returned unchanged.
    """
    if todo["status"] == "active":
        return _with_status(todo, "archived", todo["priority"])
    if todo["status"] == "archived":
        return _with_status(todo, "active", REACTIVATED_PRIORITY)
    return todo.copy()


def transition_applied(before: TodoEntity, after: TodoEntity) -> bool:
    """Return True when a toggle changed the todo's status."""
    return before["status"] != after["status"]


def _active_ordering(todos: Iterable[TodoEntity]) -> List[TodoEntity]:
    active = [t for t in todos if is_active(t) and t["priority"] is not None]
    return sorted(active, key=lambda t: (t["priority"], t["id"]))


def _renumber(ordered: List[TodoEntity]) -> PriorityChanges:
    return {t["id"]: rank for rank, t in enumerate(ordered, start=1) if t["priority"] != rank}


# PUBLIC_INTERFACE
def next_priority(todos: Iterable[TodoEntity]) -> int:
    """Return the priority that appends a todo to the end of the active list."""
    priorities = [t["priority"] for t in todos if is_active(t) and t["priority"] is not None]
    return max(priorities) + 1 if priorities else 1


def insert_position(todos: Iterable[TodoEntity], requested: Optional[int]) -> int:
    """
    Clamp a requested priority into 1..next_priority.

    None means "append to the end".
    """
    last = next_priority(todos)
    if requested is None or requested > last:
        return last
    return max(requested, 1)


# PUBLIC_INTERFACE
def find_gaps(todos: Iterable[TodoEntity]) -> int:
    """
    Count active todos whose priority differs from its dense rank.

    A dense active list has priorities exactly 1..n and yields 0.
    """
    return len(_renumber(_active_ordering(todos)))


def has_gaps(todos: Iterable[TodoEntity]) -> bool:
    return find_gaps(todos) > 0


# PUBLIC_INTERFACE
def bump_from(todos: Iterable[TodoEntity], priority: int) -> PriorityChanges:
    """Shift active todos at or after `priority` down by one to make room."""
    return {
        t["id"]: t["priority"] + 1
        for t in _active_ordering(todos)
        if t["priority"] >= priority
    }


# PUBLIC_INTERFACE
def close_gap(todos: Iterable[TodoEntity], priority: int) -> PriorityChanges:
    """Shift active todos after a vacated `priority` up by one."""
    return {
        t["id"]: t["priority"] - 1
        for t in _active_ordering(todos)
        if t["priority"] > priority
    }


# PUBLIC_INTERFACE
def move_to(todos: Iterable[TodoEntity], todo_id: int, priority: int) -> PriorityChanges:
    """
    Move an active todo to `priority` and renumber the active list densely.

    The position is clamped to the bounds of the list. Only todos whose
    priority actually changes appear in the result.
    """
    ordered = _active_ordering(todos)
    moving = next((t for t in ordered if t["id"] == todo_id), None)
    if moving is None:
        raise ValueError(f"todo {todo_id} is not in the active list")

    rest = [t for t in ordered if t["id"] != todo_id]
    index = min(max(priority, 1), len(rest) + 1) - 1
    rest.insert(index, moving)
    return _renumber(rest)


# PUBLIC_INTERFACE
def resequence(todos: Iterable[TodoEntity]) -> PriorityChanges:
    """Renumber active todos to 1..n keeping their relative (priority, id) order."""
    return _renumber(_active_ordering(todos))
