"""Data models for activity tracking, drift detection, scoring and tasks."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ActivityState(str, Enum):
    """Productivity classification of a foreground app/window."""

    GREEN = "green"
    AMBER = "amber"
    RED = "red"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEFERRED = "deferred"


class DriftPhase(str, Enum):
    ON_TRACK = "on_track"
    DRIFTING = "drifting"
    NUDGED = "nudged"
    SNOOZED = "snoozed"


@dataclass(slots=True, frozen=True)
class ActivitySample:
    """A finalized span of one app/window holding one classification."""

    app_name: str
    window_title: str
    state: ActivityState
    duration_seconds: float
    timestamp: datetime


@dataclass(slots=True)
class DailyStats:
    """Per-day aggregate; recomputable from samples and tasks except ``streak``."""

    date: date
    green_minutes: int
    amber_minutes: int
    red_minutes: int
    signal_score: int
    tasks_completed: int
    streak: int = 0

    @property
    def total_minutes(self) -> int:
        return self.green_minutes + self.amber_minutes + self.red_minutes

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["date"] = self.date.isoformat()
        return payload


@dataclass(slots=True)
class NudgeConfig:
    first_nudge_threshold_ms: int = 10 * 60 * 1000
    nudge_cooldown_ms: int = 5 * 60 * 1000
    show_system_notifications: bool = True
    ai_nudges_enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DriftStatus:
    is_drifting: bool
    drift_duration_ms: float
    current_app: str
    phase: DriftPhase = DriftPhase.ON_TRACK
    nudge_count: int = 0
    drift_ms_today: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["phase"] = self.phase.value
        return payload


@dataclass(slots=True)
class SnoozeEntry:
    app_name: str
    expires_at_ms: float


@dataclass(slots=True)
class NudgeEvent:
    """Emitted once each time the drift detector decides to interrupt the user."""

    current_app: str
    drift_duration_ms: float
    timestamp: datetime

    @property
    def drift_minutes(self) -> int:
        return int(round(self.drift_duration_ms / 60000))


@dataclass(slots=True)
class ActivityStateChange:
    app_name: str
    window_title: str
    state: ActivityState
    state_changed: bool


@dataclass(slots=True)
class AppClassification:
    """User override for one application.

    ``keywords`` prefixed with ``+`` turn matching window titles GREEN,
    keywords prefixed with ``!`` turn them RED.
    """

    app_name: str
    state: ActivityState
    keywords: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Task:
    id: str
    title: str
    status: TaskStatus
    priority: int
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    category_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    estimated_days: int = 1
    days_worked: int = 0
    last_worked_date: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority,
            "category_id": self.category_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "estimated_days": self.estimated_days,
            "days_worked": self.days_worked,
            "last_worked_date": self.last_worked_date.isoformat() if self.last_worked_date else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
