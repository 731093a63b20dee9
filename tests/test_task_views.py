"""Tests for collab_todo.core.task_views — filter, sort and dashboard stats."""

import pytest
from datetime import datetime, timedelta, timezone

from collab_todo.core.errors import InvalidArgumentError
from collab_todo.core.task_views import (
    compute_stats,
    completion_rate,
    filter_tasks,
    is_overdue,
    search_lists,
    sort_tasks,
)
from collab_todo.data.models import Priority, Task, TaskStatus, TodoList

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _task(task_id, **overrides):
    defaults = dict(id=task_id, list_id="L1", title=task_id, created_by="u1")
    defaults.update(overrides)
    if defaults.get("status") is TaskStatus.COMPLETED:
        defaults.setdefault("done", True)
    return Task(**defaults)


@pytest.fixture
def tasks():
    return [
        _task("a", priority=Priority.HIGH, status=TaskStatus.COMPLETED,
              created_at=NOW - timedelta(days=3), order=2),
        _task("b", priority=Priority.LOW, status=TaskStatus.IN_PROGRESS,
              deadline=NOW - timedelta(days=1), assigned_to_uid="u2",
              created_at=NOW - timedelta(days=2), order=0),
        _task("c", priority=Priority.MEDIUM, deadline=NOW + timedelta(days=2),
              assigned_to_uid="u2", created_at=NOW - timedelta(days=1), order=1),
    ]


class TestFilter:
    def test_all_returns_everything(self, tasks):
        assert [t.id for t in filter_tasks(tasks)] == ["a", "b", "c"]

    def test_completed(self, tasks):
        assert [t.id for t in filter_tasks(tasks, status="completed")] == ["a"]

    def test_pending_excludes_in_progress(self, tasks):
        assert [t.id for t in filter_tasks(tasks, status="pending")] == ["c"]

    def test_exact_status(self, tasks):
        assert [t.id for t in filter_tasks(tasks, status="In Progress")] == ["b"]

    def test_priority_and_assignee(self, tasks):
        assert [t.id for t in filter_tasks(tasks, priority="Low")] == ["b"]
        assert [t.id for t in filter_tasks(tasks, assignee="u2")] == ["b", "c"]

    def test_overdue_only(self, tasks):
        assert [t.id for t in filter_tasks(tasks, overdue_only=True, now=NOW)] == ["b"]

    def test_bad_filter_value(self, tasks):
        with pytest.raises(InvalidArgumentError):
            filter_tasks(tasks, priority="Urgent")


class TestSort:
    def test_priority_descending(self, tasks):
        assert [t.id for t in sort_tasks(tasks, by="priority", descending=True)] == ["a", "c", "b"]

    def test_deadline_missing_last(self, tasks):
        assert [t.id for t in sort_tasks(tasks, by="deadline")] == ["b", "c", "a"]
        assert [t.id for t in sort_tasks(tasks, by="deadline", descending=True)] == ["c", "b", "a"]

    def test_order(self, tasks):
        assert [t.id for t in sort_tasks(tasks, by="order")] == ["b", "c", "a"]

    def test_created_at_default(self, tasks):
        assert [t.id for t in sort_tasks(tasks)] == ["a", "b", "c"]

    def test_unknown_field(self, tasks):
        with pytest.raises(ValueError):
            sort_tasks(tasks, by="colour")


class TestSearchLists:
    def test_matches_name_and_description(self):
        lists = [
            TodoList(id="1", name="Groceries", owner_id="u1"),
            TodoList(id="2", name="Work", owner_id="u1", description="Quarterly groceries budget"),
            TodoList(id="3", name="Travel", owner_id="u1"),
        ]
        assert [l.id for l in search_lists(lists, "GROCER")] == ["1", "2"]
        assert len(search_lists(lists, "  ")) == 3


class TestStats:
    def test_compute_stats(self, tasks):
        stats = compute_stats({"L1": tasks, "L2": [_task("d")]}, now=NOW)
        assert stats.total == 4
        assert stats.completed == 1
        assert stats.pending == 3
        assert stats.upcoming_deadlines == 1

    def test_completion_rate(self, tasks):
        assert completion_rate(tasks) == 33
        assert completion_rate([]) == 0

    def test_is_overdue_ignores_done(self):
        done = _task("x", status=TaskStatus.COMPLETED, deadline=NOW - timedelta(days=1))
        assert is_overdue(done, NOW) is False
