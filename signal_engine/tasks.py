"""Task lifecycle and the signal-queue / backlog projections."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import ArgumentError, InvalidTransitionError, NotFoundError
from .models import Task, TaskStatus
from .storage import SignalStore
from .utils import generate_id, local_now, parse_date

logger = logging.getLogger(__name__)

QUEUE_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.PENDING)
CLOSED_STATUSES = (TaskStatus.COMPLETED, TaskStatus.DEFERRED)
ACTIVE_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

# Statuses a task may hold when ``update`` edits it or moves it back to pending.
RESUMABLE_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.DEFERRED)

_EDITABLE_FIELDS = {"title", "description", "priority", "category_id", "scheduled_date", "estimated_days", "status"}


def _check_limit(limit: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ArgumentError(f"limit must be a positive integer, got {limit!r}")


def signal_queue(tasks: Iterable[Task], limit: int = 5) -> List[Task]:
    """In-progress work first, then by priority (1 first), then oldest first."""

    _check_limit(limit)
    eligible = [task for task in tasks if task.status in QUEUE_STATUSES]
    eligible.sort(
        key=lambda task: (
            0 if task.status is TaskStatus.IN_PROGRESS else 1,
            task.priority,
            task.created_at,
        )
    )
    return eligible[:limit]


def backlog(tasks: Iterable[Task], category_id: str | None = None, limit: int = 50) -> List[Task]:
    """Every actionable task; a superset of the signal queue."""

    _check_limit(limit)
    eligible = [
        task
        for task in tasks
        if task.status not in CLOSED_STATUSES and (category_id is None or task.category_id == category_id)
    ]
    eligible.sort(key=lambda task: (task.priority, task.created_at))
    return eligible[:limit]


def _check_priority(priority: Any) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 5:
        raise ArgumentError(f"priority must be an integer between 1 and 5, got {priority!r}")
    return priority


def _check_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ArgumentError("title must be a non-empty string")
    return title.strip()


def _check_estimated_days(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ArgumentError(f"estimated_days must be a positive integer, got {value!r}")
    return value


class TaskService:
    """Creates tasks and moves them through pending / in_progress / completed / deferred.

    Each status change is a single conditional UPDATE, so two concurrent
    calls on one task never leave it in a state neither of them allowed.
    """

    def __init__(self, store: SignalStore, *, clock: Callable[[], datetime] = local_now) -> None:
        self.store = store
        self.clock = clock

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        *,
        description: str | None = None,
        priority: int = 3,
        category_id: str | None = None,
        scheduled_date: date | str | None = None,
        estimated_days: int = 1,
    ) -> Task:
        now = self.clock()
        task = Task(
            id=generate_id("task"),
            title=_check_title(title),
            description=description,
            status=TaskStatus.PENDING,
            priority=_check_priority(priority),
            category_id=category_id,
            scheduled_date=parse_date(scheduled_date, field="scheduled_date") if scheduled_date else None,
            estimated_days=_check_estimated_days(estimated_days),
            created_at=now,
            updated_at=now,
        )
        self.store.insert_task(task)
        logger.info("Created task %s (%s)", task.id, task.title)
        return task

    def get(self, task_id: str) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    def list(
        self,
        *,
        status: TaskStatus | str | None = None,
        category_id: str | None = None,
        priority: int | None = None,
    ) -> List[Task]:
        statuses = [self._status(status)] if status is not None else None
        if priority is not None:
            _check_priority(priority)
        return self.store.list_tasks(statuses=statuses, category_id=category_id, priority=priority)

    def update(self, task_id: str, **changes: Any) -> Task:
        """Edit task fields; ``status`` may only be set back to ``pending`` here."""

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ArgumentError(f"cannot update task fields: {', '.join(sorted(unknown))}")
        fields: Dict[str, Any] = {}
        for name, value in changes.items():
            if name == "title":
                fields[name] = _check_title(value)
            elif name == "priority":
                fields[name] = _check_priority(value)
            elif name == "estimated_days":
                fields[name] = _check_estimated_days(value)
            elif name == "scheduled_date":
                fields[name] = parse_date(value, field="scheduled_date") if value else None
            elif name == "status":
                status = self._status(value)
                if status is not TaskStatus.PENDING:
                    raise ArgumentError(
                        f"status can only be reset to pending by update; use the {status.value} operation instead"
                    )
                fields[name] = status
            else:
                fields[name] = value
        if not fields:
            return self.get(task_id)
        fields["updated_at"] = self.clock()
        # Completed tasks are frozen so their completion day never moves.
        return self._apply(task_id, fields, RESUMABLE_STATUSES, action="update")

    def delete(self, task_id: str) -> bool:
        deleted = self.store.delete_task(task_id)
        if deleted:
            logger.info("Deleted task %s", task_id)
        return deleted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, task_id: str) -> Task:
        now = self.clock()
        fields = {"status": TaskStatus.IN_PROGRESS, "last_worked_date": now.date(), "updated_at": now}
        return self._apply(task_id, fields, ACTIVE_STATUSES, action="start")

    def complete(self, task_id: str) -> Task:
        fields = {"status": TaskStatus.COMPLETED, "updated_at": self.clock()}
        return self._apply(task_id, fields, ACTIVE_STATUSES, action="complete")

    def defer(self, task_id: str, defer_to: date | str) -> Task:
        now = self.clock()
        start_date = parse_date(defer_to, field="defer_to")
        if start_date <= now.date():
            raise ArgumentError(f"defer_to must be a future date, got {start_date}")
        fields = {"status": TaskStatus.DEFERRED, "scheduled_date": start_date, "updated_at": now}
        return self._apply(task_id, fields, ACTIVE_STATUSES, action="defer")

    def record_work(self, task_id: str) -> Task:
        now = self.clock()
        fields = {"last_worked_date": now.date(), "updated_at": now}
        return self._apply(task_id, fields, ACTIVE_STATUSES, action="record work on", increment_days_worked=True)

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    def signal_queue(self, limit: int = 5) -> List[Task]:
        return signal_queue(self.store.list_tasks(statuses=QUEUE_STATUSES), limit)

    def backlog(self, category_id: str | None = None, limit: int = 50) -> List[Task]:
        tasks = self.store.list_tasks(statuses=ACTIVE_STATUSES, category_id=category_id)
        return backlog(tasks, category_id, limit)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _status(value: TaskStatus | str) -> TaskStatus:
        try:
            return TaskStatus(value)
        except ValueError as exc:
            raise ArgumentError(f"unknown task status: {value!r}") from exc

    def _apply(
        self,
        task_id: str,
        fields: Dict[str, Any],
        from_statuses: Optional[Iterable[TaskStatus]],
        *,
        action: str,
        increment_days_worked: bool = False,
    ) -> Task:
        changed = self.store.update_task(
            task_id,
            fields,
            from_statuses=from_statuses,
            increment_days_worked=increment_days_worked,
        )
        if changed == 0:
            current = self.store.get_task(task_id)
            if current is None:
                raise NotFoundError("task", task_id)
            raise InvalidTransitionError(f"cannot {action} task {task_id} while it is {current.status.value}")
        logger.debug("Task %s: %s", task_id, action)
        return self.get(task_id)
