import os
from datetime import datetime

import pytest

# Ensure the app module builds a memory backend to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from todo_service.db import SQLiteRepository  # noqa: E402
from todo_service.repositories import InMemoryRepository  # noqa: E402
from todo_service.service import TodoService  # noqa: E402


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "todos.db"))
    return InMemoryRepository()


@pytest.fixture
def service(repository):
    return TodoService(repository)


@pytest.fixture
def make_todo():
    def _make(todo_id=1, status="active", priority=1, title=None):
        now = datetime(2025, 1, 1, 12, 0, 0)
        return {
            "id": todo_id,
            "title": title or f"Todo {todo_id}",
            "description": None,
            "status": status,
            "priority": priority,
            "due_date": None,
            "created_at": now,
            "updated_at": now,
        }

    return _make
