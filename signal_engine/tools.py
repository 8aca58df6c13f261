"""Transport-neutral tool surface over the score engine and task service.

Every tool takes a plain dict, validates it with a pydantic model before
touching storage, and returns a JSON-serializable dict carrying ``success``.
Failures come back as ``{"success": False, "error": {"type": ..., "message": ...}}``.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ArgumentError, SignalEngineError
from .models import TaskStatus
from .scoring import ScoreEngine, score_label
from .tasks import TaskService
from .utils import local_now, round_half_up

logger = logging.getLogger(__name__)


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DayArgs(ToolArgs):
    date: Optional[dt.date] = Field(None, description="Day to report (YYYY-MM-DD); defaults to today")


class RangeArgs(ToolArgs):
    start_date: dt.date
    end_date: dt.date

    @model_validator(mode="after")
    def check_order(self) -> "RangeArgs":
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class WeekArgs(ToolArgs):
    week_offset: int = Field(0, description="0 for this week, -1 for last week, ...")


class EmptyArgs(ToolArgs):
    pass


class TaskCreateArgs(ToolArgs):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: int = Field(3, ge=1, le=5, description="1 is the most urgent")
    category_id: Optional[str] = None
    scheduled_date: Optional[dt.date] = None
    estimated_days: int = Field(1, ge=1)


class TaskListArgs(ToolArgs):
    status: Optional[TaskStatus] = None
    category_id: Optional[str] = None
    priority: Optional[int] = Field(None, ge=1, le=5)


class TaskIdArgs(ToolArgs):
    task_id: str = Field(..., min_length=1)


class TaskUpdateArgs(TaskIdArgs):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[int] = Field(None, ge=1, le=5)
    category_id: Optional[str] = None
    scheduled_date: Optional[dt.date] = None
    estimated_days: Optional[int] = Field(None, ge=1)
    status: Optional[TaskStatus] = Field(None, description="Only 'pending' is accepted here")


class TaskDeferArgs(TaskIdArgs):
    defer_to: dt.date = Field(..., description="Future date on which the task starts again")


class SignalQueueArgs(ToolArgs):
    limit: int = Field(5, ge=1, le=100)


class BacklogArgs(ToolArgs):
    category_id: Optional[str] = None
    limit: int = Field(50, ge=1, le=500)


@dataclass(slots=True)
class Tool:
    name: str
    description: str
    args_model: Type[ToolArgs]
    handler: Callable[[Any], Dict[str, Any]]


def _failure(error: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": False, "error": error}


class ToolRegistry:
    """Name-to-handler table exposed to an external agent."""

    def __init__(
        self,
        scores: ScoreEngine,
        tasks: TaskService,
        *,
        clock: Callable[[], dt.datetime] = local_now,
    ) -> None:
        self.scores = scores
        self.tasks = tasks
        self.clock = clock
        self._tools: Dict[str, Tool] = {}
        self._register_defaults()

    def register(self, name: str, description: str, args_model: Type[ToolArgs], handler: Callable[[Any], Dict[str, Any]]) -> None:
        self._tools[name] = Tool(name=name, description=description, args_model=args_model, handler=handler)

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.args_model.model_json_schema(),
            }
            for tool in self._tools.values()
        ]

    def call(self, name: str, arguments: Dict[str, Any] | None = None) -> Dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return _failure({"type": "unknown_tool", "message": f"unknown tool: {name}"})
        try:
            args = tool.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            details = exc.errors(include_url=False, include_context=False, include_input=False)
            error = ArgumentError(f"invalid arguments for {name}", details=details)
            return _failure(error.to_dict())
        try:
            payload = tool.handler(args)
        except SignalEngineError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return _failure(exc.to_dict())
        result: Dict[str, Any] = {"success": True}
        result.update(payload)
        return result

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _register_defaults(self) -> None:
        self.register("stats_get_day", "Signal score and minutes for one day.", DayArgs, self._stats_get_day)
        self.register(
            "stats_get_range",
            "Per-day stats, totals and average score for an inclusive date range.",
            RangeArgs,
            self._stats_get_range,
        )
        self.register("stats_get_week", "Stats for a Sunday-Saturday week.", WeekArgs, self._stats_get_week)
        self.register("stats_get_streak", "Current productive-day streak.", EmptyArgs, self._stats_get_streak)
        self.register(
            "stats_get_insights",
            "Top, productive and distracting apps plus task completion for the last 7 days.",
            EmptyArgs,
            self._stats_get_insights,
        )
        self.register("task_create", "Create a pending task.", TaskCreateArgs, self._task_create)
        self.register("task_list", "List tasks, optionally filtered.", TaskListArgs, self._task_list)
        self.register("task_get", "Fetch one task.", TaskIdArgs, self._task_get)
        self.register("task_update", "Edit task fields or resume a task to pending.", TaskUpdateArgs, self._task_update)
        self.register("task_delete", "Delete a task.", TaskIdArgs, self._task_delete)
        self.register("task_start", "Mark a task in progress.", TaskIdArgs, self._task_start)
        self.register("task_complete", "Mark a task completed.", TaskIdArgs, self._task_complete)
        self.register("task_defer", "Defer a task to a future start date.", TaskDeferArgs, self._task_defer)
        self.register("task_record_work", "Record a day of work on a task.", TaskIdArgs, self._task_record_work)
        self.register(
            "task_signal_queue",
            "The few tasks to work on next: in progress first, then by priority.",
            SignalQueueArgs,
            self._task_signal_queue,
        )
        self.register(
            "task_backlog",
            "All actionable tasks ordered by priority.",
            BacklogArgs,
            self._task_backlog,
        )

    def _stats_get_day(self, args: DayArgs) -> Dict[str, Any]:
        today = self.clock().date()
        day = args.date or today
        stats = self.scores.get_day(day)
        total = stats.total_minutes
        productive = round_half_up(stats.green_minutes / total * 100) if total else 0
        return {
            "stats": stats.to_dict(),
            "label": score_label(stats.signal_score),
            "summary": {
                "total_tracked_minutes": total,
                "productive_percentage": productive,
                "is_today": day == today,
            },
        }

    def _stats_get_range(self, args: RangeArgs) -> Dict[str, Any]:
        return self.scores.get_range(args.start_date, args.end_date).to_dict()

    def _stats_get_week(self, args: WeekArgs) -> Dict[str, Any]:
        payload = self.scores.get_week(args.week_offset).to_dict()
        payload["week_offset"] = args.week_offset
        return payload

    def _stats_get_streak(self, args: EmptyArgs) -> Dict[str, Any]:
        return self.scores.get_streak(self.clock().date()).to_dict()

    def _stats_get_insights(self, args: EmptyArgs) -> Dict[str, Any]:
        return self.scores.get_insights(self.clock())

    def _task_create(self, args: TaskCreateArgs) -> Dict[str, Any]:
        task = self.tasks.create(
            args.title,
            description=args.description,
            priority=args.priority,
            category_id=args.category_id,
            scheduled_date=args.scheduled_date,
            estimated_days=args.estimated_days,
        )
        return {"task": task.to_dict()}

    def _task_list(self, args: TaskListArgs) -> Dict[str, Any]:
        tasks = self.tasks.list(status=args.status, category_id=args.category_id, priority=args.priority)
        return {"tasks": [task.to_dict() for task in tasks], "count": len(tasks)}

    def _task_get(self, args: TaskIdArgs) -> Dict[str, Any]:
        return {"task": self.tasks.get(args.task_id).to_dict()}

    def _task_update(self, args: TaskUpdateArgs) -> Dict[str, Any]:
        changes = args.model_dump(exclude={"task_id"}, exclude_unset=True)
        return {"task": self.tasks.update(args.task_id, **changes).to_dict()}

    def _task_delete(self, args: TaskIdArgs) -> Dict[str, Any]:
        deleted = self.tasks.delete(args.task_id)
        return {"success": deleted, "deleted": deleted, "task_id": args.task_id}

    def _task_start(self, args: TaskIdArgs) -> Dict[str, Any]:
        return {"task": self.tasks.start(args.task_id).to_dict()}

    def _task_complete(self, args: TaskIdArgs) -> Dict[str, Any]:
        return {"task": self.tasks.complete(args.task_id).to_dict()}

    def _task_defer(self, args: TaskDeferArgs) -> Dict[str, Any]:
        return {"task": self.tasks.defer(args.task_id, args.defer_to).to_dict()}

    def _task_record_work(self, args: TaskIdArgs) -> Dict[str, Any]:
        return {"task": self.tasks.record_work(args.task_id).to_dict()}

    def _task_signal_queue(self, args: SignalQueueArgs) -> Dict[str, Any]:
        tasks = self.tasks.signal_queue(args.limit)
        return {"tasks": [task.to_dict() for task in tasks], "count": len(tasks)}

    def _task_backlog(self, args: BacklogArgs) -> Dict[str, Any]:
        tasks = self.tasks.backlog(args.category_id, args.limit)
        return {"tasks": [task.to_dict() for task in tasks], "count": len(tasks)}
