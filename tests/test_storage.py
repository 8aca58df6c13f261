from datetime import datetime

import pytest

from signal_engine.errors import StorageError
from signal_engine.models import ActivityState, AppClassification, Task, TaskStatus


def test_app_classifications_round_trip_case_insensitively(store):
    store.upsert_app_classification(AppClassification("Slack", ActivityState.RED, ["+standup"]))
    store.upsert_app_classification(AppClassification("slack", ActivityState.AMBER, []))
    items = store.list_app_classifications()
    assert len(items) == 1
    assert items[0].state is ActivityState.AMBER
    assert store.delete_app_classification("SLACK") is True
    assert store.list_app_classifications() == []


def test_constraint_violations_become_storage_errors(store):
    now = datetime(2026, 10, 14, 9, 0)
    bad = Task(id="task_x", title="x", status=TaskStatus.PENDING, priority=9, created_at=now, updated_at=now)
    with pytest.raises(StorageError):
        store.insert_task(bad)
    assert store.get_task("task_x") is None


def test_conditional_update_reports_rows_changed(store):
    now = datetime(2026, 10, 14, 9, 0)
    store.insert_task(Task(id="task_a", title="a", status=TaskStatus.PENDING, priority=3, created_at=now, updated_at=now))
    changed = store.update_task(
        "task_a",
        {"status": TaskStatus.COMPLETED},
        from_statuses=[TaskStatus.IN_PROGRESS],
    )
    assert changed == 0
    assert store.update_task("task_a", {"status": TaskStatus.IN_PROGRESS}, from_statuses=[TaskStatus.PENDING]) == 1
    assert store.get_task("task_a").status is TaskStatus.IN_PROGRESS
