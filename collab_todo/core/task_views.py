"""
Collab Todo — Task view helpers.

Pure functions the presentation layer uses to filter, sort and summarize
the engine's projections. No I/O, no engine state.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from collab_todo.data.models import Priority, Task, TaskStatus, TodoList, utc_now

_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2}
_STATUS_RANK = {TaskStatus.PENDING: 0, TaskStatus.IN_PROGRESS: 1, TaskStatus.COMPLETED: 2}
_UPCOMING_WINDOW = timedelta(days=7)


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    now = now or utc_now()
    return task.deadline is not None and task.deadline < now and not task.done


def filter_tasks(
    tasks: Iterable[Task],
    status: str = "all",
    priority: str = "all",
    assignee: str = "all",
    overdue_only: bool = False,
    now: datetime | None = None,
) -> list[Task]:
    """Filter tasks the way the list view's filter menu does.

    status: "all" | "completed" | "pending" (not done and not in progress)
    | any TaskStatus value.
    """
    result = list(tasks)
    if status != "all":
        if status == "completed":
            result = [t for t in result if t.done]
        elif status == "pending":
            result = [
                t for t in result
                if not t.done and t.status is not TaskStatus.IN_PROGRESS
            ]
        else:
            wanted = TaskStatus.parse(status)
            result = [t for t in result if t.status is wanted]

    if priority != "all":
        wanted_priority = Priority.parse(priority)
        result = [t for t in result if t.priority is wanted_priority]

    if assignee != "all":
        result = [t for t in result if t.assigned_to_uid == assignee]

    if overdue_only:
        now = now or utc_now()
        result = [t for t in result if is_overdue(t, now)]
    return result


def _sort_key(task: Task, by: str):
    if by == "priority":
        return _PRIORITY_RANK[task.priority]
    if by == "status":
        return _STATUS_RANK[task.status]
    if by == "title":
        return task.title.lower()
    if by == "order":
        return task.order
    if by == "deadline":
        return task.deadline
    if by == "createdAt":
        return task.created_at
    raise ValueError(f"Unknown sort field: {by!r}")


def sort_tasks(tasks: Iterable[Task], by: str = "createdAt", descending: bool = False) -> list[Task]:
    """Sort by createdAt | deadline | title | priority | status | order.

    Tasks without a value for the field always go last.
    """
    items = list(tasks)
    present = [t for t in items if _sort_key(t, by) is not None]
    missing = [t for t in items if _sort_key(t, by) is None]
    present.sort(key=lambda t: _sort_key(t, by), reverse=descending)
    return present + missing


def search_lists(lists: Iterable[TodoList], term: str) -> list[TodoList]:
    term = (term or "").strip().lower()
    if not term:
        return list(lists)
    return [
        todo_list for todo_list in lists
        if term in todo_list.name.lower()
        or (todo_list.description and term in todo_list.description.lower())
    ]


@dataclass
class TaskStats:
    total: int = 0
    completed: int = 0
    pending: int = 0
    upcoming_deadlines: int = 0


def compute_stats(
    tasks_by_list_id: dict[str, list[Task]],
    now: datetime | None = None,
) -> TaskStats:
    """Dashboard counters across every list.

    A deadline is "upcoming" when it falls in the next 7 days and the task
    is still open.
    """
    now = now or utc_now()
    stats = TaskStats()
    for tasks in tasks_by_list_id.values():
        for task in tasks:
            stats.total += 1
            if task.done:
                stats.completed += 1
            elif task.deadline and now < task.deadline <= now + _UPCOMING_WINDOW:
                stats.upcoming_deadlines += 1
    stats.pending = stats.total - stats.completed
    return stats


def completion_rate(tasks: Iterable[Task]) -> int:
    """Percentage (0-100, rounded) of tasks that are done."""
    items = list(tasks)
    if not items:
        return 0
    return round(sum(1 for t in items if t.done) / len(items) * 100)
