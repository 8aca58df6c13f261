from datetime import date, datetime, timedelta

import pytest

from signal_engine.errors import ArgumentError, InvalidTransitionError, NotFoundError
from signal_engine.models import Task, TaskStatus
from signal_engine.tasks import TaskService, backlog, signal_queue

BASE = datetime(2026, 10, 14, 9, 0)


def make_task(task_id, status, priority, minutes=0, category_id=None):
    created = BASE + timedelta(minutes=minutes)
    return Task(
        id=task_id,
        title=task_id,
        status=TaskStatus(status),
        priority=priority,
        created_at=created,
        updated_at=created,
        category_id=category_id,
    )


class StepClock:
    def __init__(self, start=BASE):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def tasks(store):
    return TaskService(store, clock=StepClock())


def test_signal_queue_puts_in_progress_first():
    items = [
        make_task("a", "pending", 3, 0),
        make_task("b", "in_progress", 5, 1),
        make_task("c", "pending", 1, 2),
    ]
    assert [task.id for task in signal_queue(items)] == ["b", "c", "a"]


def test_signal_queue_breaks_ties_by_age_and_truncates():
    items = [make_task(f"t{i}", "pending", 2, minutes=10 - i) for i in range(8)]
    queue = signal_queue(items, limit=3)
    assert [task.id for task in queue] == ["t7", "t6", "t5"]


def test_backlog_excludes_completed_and_deferred():
    items = [
        make_task("done", "completed", 1),
        make_task("later", "deferred", 1),
        make_task("todo", "pending", 4),
        make_task("doing", "in_progress", 2),
    ]
    result = backlog(items)
    assert len(result) == 2
    assert [task.id for task in result] == ["doing", "todo"]


def test_backlog_filters_by_category():
    items = [
        make_task("a", "pending", 1, category_id="work"),
        make_task("b", "pending", 1, category_id="home"),
    ]
    assert [task.id for task in backlog(items, category_id="home")] == ["b"]


def test_limit_must_be_positive():
    with pytest.raises(ArgumentError):
        signal_queue([], limit=0)
    with pytest.raises(ArgumentError):
        backlog([], limit=-5)


def test_create_and_get(tasks):
    task = tasks.create("  Write report ", priority=2, category_id="work", estimated_days=3)
    assert task.title == "Write report"
    assert task.status is TaskStatus.PENDING
    assert task.id.startswith("task_")
    stored = tasks.get(task.id)
    assert stored == task


def test_create_validates(tasks):
    with pytest.raises(ArgumentError):
        tasks.create("x", priority=6)
    with pytest.raises(ArgumentError):
        tasks.create("   ")
    with pytest.raises(ArgumentError):
        tasks.create("x", estimated_days=0)


def test_get_unknown_task(tasks):
    with pytest.raises(NotFoundError):
        tasks.get("task_missing")


def test_start_and_complete(tasks):
    task = tasks.create("Ship")
    started = tasks.start(task.id)
    assert started.status is TaskStatus.IN_PROGRESS
    assert started.last_worked_date == date(2026, 10, 14)
    completed = tasks.complete(task.id)
    assert completed.status is TaskStatus.COMPLETED
    with pytest.raises(InvalidTransitionError):
        tasks.start(task.id)
    with pytest.raises(InvalidTransitionError):
        tasks.complete(task.id)


def test_lifecycle_on_unknown_task_is_not_found(tasks):
    for operation in (tasks.start, tasks.complete, tasks.record_work):
        with pytest.raises(NotFoundError):
            operation("task_missing")
    with pytest.raises(NotFoundError):
        tasks.defer("task_missing", date(2026, 12, 1))


def test_defer_and_resume(tasks):
    task = tasks.create("Plan trip")
    deferred = tasks.defer(task.id, "2026-11-01")
    assert deferred.status is TaskStatus.DEFERRED
    assert deferred.scheduled_date == date(2026, 11, 1)
    with pytest.raises(InvalidTransitionError):
        tasks.start(task.id)
    resumed = tasks.update(task.id, status="pending")
    assert resumed.status is TaskStatus.PENDING


def test_defer_requires_future_date(tasks):
    task = tasks.create("Plan trip")
    with pytest.raises(ArgumentError):
        tasks.defer(task.id, date(2026, 10, 14))


def test_update_cannot_bypass_lifecycle(tasks):
    task = tasks.create("Refactor")
    with pytest.raises(ArgumentError):
        tasks.update(task.id, status="completed")
    with pytest.raises(ArgumentError):
        tasks.update(task.id, created_at=BASE)
    tasks.complete(task.id)
    with pytest.raises(InvalidTransitionError):
        tasks.update(task.id, status="pending")


def test_update_fields(tasks):
    task = tasks.create("Refactor")
    updated = tasks.update(task.id, title="Refactor storage", priority=1, description="split module")
    assert (updated.title, updated.priority, updated.description) == ("Refactor storage", 1, "split module")
    assert updated.updated_at > task.updated_at
    with pytest.raises(NotFoundError):
        tasks.update("task_missing", title="x")


def test_completed_task_fields_are_frozen(tasks, store):
    task = tasks.create("Ship release")
    done = tasks.complete(task.id)
    completed_on = done.updated_at.date()
    with pytest.raises(InvalidTransitionError):
        tasks.update(task.id, title="Ship release v2", priority=1)
    unchanged = tasks.get(task.id)
    assert unchanged.title == "Ship release"
    assert unchanged.updated_at == done.updated_at
    assert store.completed_task_counts(completed_on, completed_on) == {completed_on: 1}


def test_record_work_can_overrun_estimate(tasks):
    task = tasks.create("Migrate", estimated_days=1)
    tasks.start(task.id)
    tasks.record_work(task.id)
    worked = tasks.record_work(task.id)
    assert worked.days_worked == 2
    assert worked.days_worked > worked.estimated_days
    assert worked.last_worked_date == date(2026, 10, 14)


def test_delete_reports_missing_task(tasks):
    task = tasks.create("Temporary")
    assert tasks.delete(task.id) is True
    assert tasks.delete(task.id) is False


def test_queue_and_backlog_from_store(tasks):
    low = tasks.create("Low", priority=4)
    urgent = tasks.create("Urgent", priority=1)
    doing = tasks.create("Doing", priority=5)
    later = tasks.create("Later", priority=1)
    tasks.start(doing.id)
    tasks.defer(later.id, date(2026, 11, 1))
    assert [t.id for t in tasks.signal_queue()] == [doing.id, urgent.id, low.id]
    assert [t.id for t in tasks.backlog()] == [urgent.id, low.id, doing.id]
    assert [t.id for t in tasks.list(status="deferred")] == [later.id]
