import pytest

from todo_service.repositories import ListQuery
from todo_service.schemas import TodoCreate, TodoUpdate


def create(service, title, priority=None, **extra):
    return service.create_todo(TodoCreate(title=title, priority=priority, **extra))


def active_order(service):
    return [(t["title"], t["priority"]) for t in service.get_active_todos()]


class TestCreate:
    def test_new_todo_is_active_and_stamped(self, service):
        todo = create(service, "Buy milk", description="2 litres", due_date="2099-12-25")
        assert todo["status"] == "active"
        assert todo["priority"] == 1
        assert todo["description"] == "2 litres"
        assert todo["due_date"].year == 2099
        assert todo["created_at"] == todo["updated_at"]

    def test_priority_defaults_to_end_of_active_list(self, service):
        create(service, "a")
        create(service, "b")
        c = create(service, "c")
        assert c["priority"] == 3

    def test_insert_bumps_later_todos(self, service):
        create(service, "a", 1)
        create(service, "b", 2)
        create(service, "c", 3)
        create(service, "new", 2)
        assert active_order(service) == [("a", 1), ("new", 2), ("b", 3), ("c", 4)]

    def test_priority_beyond_end_is_normalized(self, service):
        create(service, "a", 1)
        create(service, "b", 2)
        high = create(service, "high", 100)
        assert high["priority"] == 3


class TestToggles:
    def test_complete_then_reactivate_restores_priority(self, service):
        todo = create(service, "Test Todo", 1)

        completed = service.toggle_completed(todo["id"])
        assert completed["status"] == "completed"
        assert completed["priority"] == 1

        reactivated = service.toggle_completed(todo["id"])
        assert reactivated["status"] == "active"
        assert reactivated["priority"] == 1

    def test_archive_then_reactivate_resets_priority(self, service):
        create(service, "first", 1)
        todo = create(service, "Test Todo", 2)

        archived = service.toggle_archived(todo["id"])
        assert archived["status"] == "archived"
        assert archived["priority"] == 2

        reactivated = service.toggle_archived(todo["id"])
        assert reactivated["status"] == "active"
        assert reactivated["priority"] == 1

    def test_toggle_completed_leaves_archived_todo_unchanged(self, service):
        todo = create(service, "Test Todo", 1)
        archived = service.update_todo(todo["id"], TodoUpdate(status="archived"))

        result = service.toggle_completed(todo["id"])
        assert result == archived
        assert service.get_todo(todo["id"]) == archived

    def test_toggle_archived_leaves_completed_todo_unchanged(self, service):
        todo = create(service, "Test Todo", 1)
        completed = service.update_todo(todo["id"], TodoUpdate(status="completed"))

        result = service.toggle_archived(todo["id"])
        assert result == completed
        assert result["status"] == "completed"

    def test_undo_complete_and_undo_archive(self, service):
        a = create(service, "Todo A", 1)
        b = create(service, "Todo B", 2)
        assert service.update_todo(a["id"], TodoUpdate(status="completed"))["status"] == "completed"
        assert service.update_todo(b["id"], TodoUpdate(status="archived"))["status"] == "archived"

        uncompleted = service.toggle_completed(a["id"])
        unarchived = service.toggle_archived(b["id"])
        assert (uncompleted["status"], uncompleted["priority"]) == ("active", 1)
        assert (unarchived["status"], unarchived["priority"]) == ("active", 1)

        again_a = service.toggle_completed(a["id"])
        again_b = service.toggle_archived(b["id"])
        assert (again_a["status"], again_a["priority"]) == ("completed", 1)
        assert again_b["status"] == "archived"

    def test_toggle_only_touches_the_target(self, service):
        a = create(service, "a", 1)
        b = create(service, "b", 2)
        service.toggle_completed(a["id"])
        assert service.get_todo(b["id"])["priority"] == 2

    def test_missing_todo_yields_none(self, service):
        assert service.toggle_completed(999) is None
        assert service.toggle_archived(999) is None


class TestUpdate:
    def test_status_change_keeps_priority(self, service):
        create(service, "a", 1)
        b = create(service, "b", 2)
        updated = service.update_todo(b["id"], TodoUpdate(status="completed"))
        assert updated["status"] == "completed"
        assert updated["priority"] == 2

    def test_partial_update_keeps_other_fields(self, service):
        todo = create(service, "Partial", description="X")
        updated = service.update_todo(todo["id"], TodoUpdate(title="Partial Updated"))
        assert updated["title"] == "Partial Updated"
        assert updated["description"] == "X"
        assert updated["updated_at"] >= todo["updated_at"]

    def test_explicit_null_clears_description(self, service):
        todo = create(service, "Clear me", description="X", due_date="2099-01-01")
        updated = service.update_todo(todo["id"], TodoUpdate(description=None, due_date=None))
        assert updated["description"] is None
        assert updated["due_date"] is None

    def test_move_down_without_gaps(self, service):
        a = create(service, "a", 1)
        create(service, "b", 2)
        create(service, "c", 3)
        service.update_todo(a["id"], TodoUpdate(priority=2))
        assert active_order(service) == [("b", 1), ("a", 2), ("c", 3)]

    def test_move_up_without_gaps(self, service):
        create(service, "a", 1)
        create(service, "b", 2)
        c = create(service, "c", 3)
        service.update_todo(c["id"], TodoUpdate(priority=1))
        assert active_order(service) == [("c", 1), ("a", 2), ("b", 3)]

    def test_move_to_middle(self, service):
        for i, title in enumerate("abcd", start=1):
            create(service, title, i)
        d = service.get_active_todos()[-1]
        service.update_todo(d["id"], TodoUpdate(priority=2))
        assert active_order(service) == [("a", 1), ("d", 2), ("b", 3), ("c", 4)]

    def test_priority_on_inactive_todo_is_stored_as_given(self, service):
        a = create(service, "a", 1)
        create(service, "b", 2)
        service.update_todo(a["id"], TodoUpdate(status="archived"))
        updated = service.update_todo(a["id"], TodoUpdate(priority=5))
        assert updated["priority"] == 5
        assert active_order(service) == [("b", 2)]

    def test_reactivating_with_priority_inserts_it(self, service):
        a = create(service, "a", 1)
        create(service, "b", 2)
        create(service, "c", 3)
        service.update_todo(a["id"], TodoUpdate(status="completed"))
        service.resequence_active_priorities()

        service.update_todo(a["id"], TodoUpdate(status="active", priority=2))
        assert active_order(service) == [("b", 1), ("a", 2), ("c", 3)]

    def test_missing_todo_yields_none(self, service):
        assert service.update_todo(404, TodoUpdate(title="Nope")) is None


class TestDelete:
    def test_deleting_middle_closes_gap(self, service):
        create(service, "1", 1)
        two = create(service, "2", 2)
        create(service, "3", 3)
        create(service, "4", 4)

        assert service.delete_todo(two["id"]) is True
        assert active_order(service) == [("1", 1), ("3", 2), ("4", 3)]

    def test_deleting_inactive_todo_leaves_active_list_alone(self, service):
        a = create(service, "a", 1)
        create(service, "b", 2)
        service.update_todo(a["id"], TodoUpdate(status="completed"))
        service.delete_todo(a["id"])
        assert active_order(service) == [("b", 2)]

    def test_deleting_twice(self, service):
        todo = create(service, "gone")
        assert service.delete_todo(todo["id"]) is True
        assert service.get_todo(todo["id"]) is None
        assert service.delete_todo(todo["id"]) is False


class TestMaintenance:
    def test_resequence_on_dense_list_is_a_no_op(self, service):
        for i in range(1, 4):
            create(service, f"Todo {i}", i)
        assert service.resequence_active_priorities() == {"resequenced": False, "gaps": 0}
        assert [p for _, p in active_order(service)] == [1, 2, 3]

    def test_resequence_repairs_gap_left_by_toggle(self, service):
        create(service, "1", 1)
        two = create(service, "2", 2)
        create(service, "3", 3)
        service.toggle_completed(two["id"])

        assert service.resequence_active_priorities() == {"resequenced": True, "gaps": 1}
        assert active_order(service) == [("1", 1), ("3", 2)]
        assert service.get_todo(two["id"])["priority"] == 2

    def test_stats(self, service):
        a = create(service, "a")
        b = create(service, "b")
        create(service, "c")
        service.toggle_completed(a["id"])
        service.toggle_archived(b["id"])
        assert service.get_stats() == {"total": 3, "active": 1, "completed": 1, "archived": 1}

    def test_listings_by_status(self, service):
        a = create(service, "a")
        b = create(service, "b")
        c = create(service, "c")
        service.toggle_completed(c["id"])
        service.toggle_completed(a["id"])
        assert [t["title"] for t in service.get_completed_todos()] == ["a", "c"]
        assert [t["id"] for t in service.get_active_todos()] == [b["id"]]
        assert service.get_archived_todos() == []

    def test_list_todos_filters_by_status(self, service):
        a = create(service, "a")
        create(service, "b")
        service.toggle_archived(a["id"])
        items, total = service.list_todos(ListQuery(status="archived"))
        assert total == 1
        assert items[0]["id"] == a["id"]

    def test_clear_all(self, service):
        create(service, "a")
        create(service, "b")
        service.clear_all_todos()
        assert service.get_all_todos() == []
        assert service.get_stats()["total"] == 0


def fail_on_call(monkeypatch, repository, method, call=1):
    """Make repository.<method> raise on its Nth call, after the earlier calls went through."""
    original = getattr(repository, method)
    calls = []

    def wrapper(*args, **kwargs):
        calls.append(args)
        if len(calls) == call:
            raise RuntimeError(f"{method} failed")
        return original(*args, **kwargs)

    monkeypatch.setattr(repository, method, wrapper)


class TestAtomicity:
    def test_failed_insert_undoes_the_bump(self, service, monkeypatch):
        create(service, "a", 1)
        create(service, "b", 2)
        fail_on_call(monkeypatch, service.repository, "insert")

        with pytest.raises(RuntimeError):
            create(service, "new", 1)

        assert active_order(service) == [("a", 1), ("b", 2)]
        assert service.get_stats()["total"] == 2

    def test_store_is_usable_after_a_failed_create(self, service, monkeypatch):
        create(service, "a", 1)
        fail_on_call(monkeypatch, service.repository, "insert")
        with pytest.raises(RuntimeError):
            create(service, "lost", 1)
        monkeypatch.undo()

        create(service, "b", 1)
        assert active_order(service) == [("b", 1), ("a", 2)]

    def test_failed_gap_close_keeps_deleted_todo(self, service, monkeypatch):
        a = create(service, "a", 1)
        create(service, "b", 2)
        create(service, "c", 3)
        fail_on_call(monkeypatch, service.repository, "update", call=2)

        with pytest.raises(RuntimeError):
            service.delete_todo(a["id"])

        assert service.get_todo(a["id"]) is not None
        assert active_order(service) == [("a", 1), ("b", 2), ("c", 3)]

    def test_failed_move_leaves_order_untouched(self, service, monkeypatch):
        create(service, "a", 1)
        create(service, "b", 2)
        c = create(service, "c", 3)
        fail_on_call(monkeypatch, service.repository, "update", call=2)

        with pytest.raises(RuntimeError):
            service.update_todo(c["id"], TodoUpdate(priority=1))

        assert active_order(service) == [("a", 1), ("b", 2), ("c", 3)]

    def test_failed_resequence_is_rolled_back(self, service, monkeypatch):
        create(service, "1", 1)
        two = create(service, "2", 2)
        create(service, "3", 3)
        create(service, "4", 4)
        service.toggle_completed(two["id"])
        fail_on_call(monkeypatch, service.repository, "update", call=2)

        with pytest.raises(RuntimeError):
            service.resequence_active_priorities()

        assert active_order(service) == [("1", 1), ("3", 3), ("4", 4)]
