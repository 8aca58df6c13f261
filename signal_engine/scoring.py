"""Signal score, daily aggregation and streak bookkeeping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ArgumentError
from .models import ActivityState, DailyStats, TaskStatus
from .storage import SignalStore
from .utils import local_now, parse_date, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
PRODUCTIVE_THRESHOLD = 50
INSIGHT_WINDOW_DAYS = 7

SCORE_LABELS = [
    (90, "Musk-Level"),
    (75, "Strong Signal"),
    (60, "Moderate"),
    (40, "Noisy"),
]


def calculate_signal_score(green_minutes: float, amber_minutes: float, red_minutes: float) -> int:
    """Map the green/red balance of a day onto 0-100; 50 when nothing was tracked."""

    if min(green_minutes, amber_minutes, red_minutes) < 0:
        raise ArgumentError("minute totals must be non-negative")
    total = green_minutes + amber_minutes + red_minutes
    if total == 0:
        return NEUTRAL_SCORE
    return round_half_up(((green_minutes - red_minutes) / total + 1) * 50)


def score_label(score: int) -> str:
    for floor, label in SCORE_LABELS:
        if score >= floor:
            return label
    return "Static"


@dataclass(slots=True)
class RangeSummary:
    start_date: date
    end_date: date
    days: List[DailyStats] = field(default_factory=list)

    @property
    def green_minutes(self) -> int:
        return sum(day.green_minutes for day in self.days)

    @property
    def amber_minutes(self) -> int:
        return sum(day.amber_minutes for day in self.days)

    @property
    def red_minutes(self) -> int:
        return sum(day.red_minutes for day in self.days)

    @property
    def tasks_completed(self) -> int:
        return sum(day.tasks_completed for day in self.days)

    @property
    def total_minutes(self) -> int:
        return self.green_minutes + self.amber_minutes + self.red_minutes

    @property
    def average_signal_score(self) -> int:
        if not self.days:
            return NEUTRAL_SCORE
        return round_half_up(sum(day.signal_score for day in self.days) / len(self.days))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "days": [day.to_dict() for day in self.days],
            "totals": {
                "green_minutes": self.green_minutes,
                "amber_minutes": self.amber_minutes,
                "red_minutes": self.red_minutes,
                "total_minutes": self.total_minutes,
                "tasks_completed": self.tasks_completed,
            },
            "average_signal_score": self.average_signal_score,
            "days_tracked": len(self.days),
        }


@dataclass(slots=True)
class StreakStatus:
    streak: int
    last_recorded_date: Optional[date]
    last_signal_score: Optional[int]
    is_active: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "streak": self.streak,
            "last_recorded_date": self.last_recorded_date.isoformat() if self.last_recorded_date else None,
            "last_signal_score": self.last_signal_score,
            "is_active": self.is_active,
            "message": self.message,
        }


class ScoreEngine:
    """Aggregates finalized samples and task completions into :class:`DailyStats`.

    Aggregates are always recomputed from ``activity_logs`` and ``tasks``.
    Only the streak column is history: it is written once per day by
    :meth:`close_day` and never recomputed afterwards.
    """

    def __init__(
        self,
        store: SignalStore,
        *,
        clock: Callable[[], datetime] = local_now,
        productive_threshold: int = PRODUCTIVE_THRESHOLD,
    ) -> None:
        self.store = store
        self.clock = clock
        self.productive_threshold = productive_threshold

    def is_productive(self, score: int) -> bool:
        return score > self.productive_threshold

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_day(self, day: date | str | None = None) -> DailyStats:
        day = self._today() if day is None else parse_date(day)
        seconds = self.store.state_seconds_by_day(day, day).get(day, {})
        completed = self.store.completed_task_counts(day, day).get(day, 0)
        stats = self._build(day, seconds, completed)
        stored = self.store.get_daily_stats(day)
        stats.streak = stored.streak if stored else self._next_streak(day, stats.signal_score)
        return stats

    def get_range(self, start: date | str, end: date | str) -> RangeSummary:
        start = parse_date(start, field="start_date")
        end = parse_date(end, field="end_date")
        if start > end:
            raise ArgumentError(f"start_date {start} is after end_date {end}")
        seconds = self.store.state_seconds_by_day(start, end)
        completed = self.store.completed_task_counts(start, end)
        stored = self.store.daily_stats_between(start, end)
        days: List[DailyStats] = []
        for day in sorted(seconds):
            stats = self._build(day, seconds[day], completed.get(day, 0))
            if day in stored:
                stats.streak = stored[day].streak
            else:
                stats.streak = self._next_streak(day, stats.signal_score, known=stored)
            days.append(stats)
        return RangeSummary(start_date=start, end_date=end, days=days)

    def week_bounds(self, week_offset: int = 0) -> tuple[date, date]:
        """Sunday-to-Saturday bounds of the current week shifted by ``week_offset`` weeks."""

        today = self._today()
        start = today - timedelta(days=(today.weekday() + 1) % 7) + timedelta(weeks=week_offset)
        return start, start + timedelta(days=6)

    def get_week(self, week_offset: int = 0) -> RangeSummary:
        start, end = self.week_bounds(week_offset)
        return self.get_range(start, end)

    def get_streak(self, today: date | None = None) -> StreakStatus:
        today = today or self._today()
        latest = self.store.latest_daily_stats()
        if latest is None:
            return StreakStatus(
                streak=0,
                last_recorded_date=None,
                last_signal_score=None,
                is_active=False,
                message="No streak data yet. Complete your first day to start a streak!",
            )
        days_diff = (today - latest.date).days
        is_active = days_diff <= 1
        streak = latest.streak if is_active else 0
        if is_active and streak > 0:
            message = f"You're on a {streak} day streak! Keep it going!"
        else:
            message = "Your streak ended. Start fresh today!"
        return StreakStatus(
            streak=streak,
            last_recorded_date=latest.date,
            last_signal_score=latest.signal_score,
            is_active=is_active,
            message=message,
        )

    def get_insights(self, now: datetime | None = None) -> Dict[str, Any]:
        now = now or self.clock()
        since = now - timedelta(days=INSIGHT_WINDOW_DAYS)
        apps = []
        for app_name, per_state in self.store.app_state_seconds_since(since).items():
            green, amber, red = self._minutes(per_state)
            apps.append(
                {
                    "app_name": app_name,
                    "total_minutes": green + amber + red,
                    "green_minutes": green,
                    "amber_minutes": amber,
                    "red_minutes": red,
                }
            )
        top_apps = sorted(apps, key=lambda item: (-item["total_minutes"], item["app_name"]))[:10]
        productive = sorted(
            (item for item in apps if item["green_minutes"] > item["red_minutes"]),
            key=lambda item: (-item["green_minutes"], item["app_name"]),
        )[:5]
        distracting = sorted(
            (item for item in apps if item["red_minutes"] > item["green_minutes"]),
            key=lambda item: (-item["red_minutes"], item["app_name"]),
        )[:5]

        status_counts = self.store.task_status_counts_since(since)
        task_stats: Dict[str, int] = {status.value: status_counts.get(status, 0) for status in TaskStatus}
        total_tasks = sum(task_stats.values())
        task_stats["total"] = total_tasks
        completion_rate = 0
        if total_tasks:
            completion_rate = round_half_up(task_stats[TaskStatus.COMPLETED.value] / total_tasks * 100)
        return {
            "period_start": since.date().isoformat(),
            "period_end": now.date().isoformat(),
            "top_apps": top_apps,
            "productive_apps": productive,
            "distracting_apps": distracting,
            "task_stats": task_stats,
            "completion_rate": completion_rate,
        }

    # ------------------------------------------------------------------
    # Day close-out
    # ------------------------------------------------------------------

    def close_day(self, day: date | str) -> DailyStats:
        """Persist the day's aggregates; the streak is written only the first time."""

        day = parse_date(day)
        seconds = self.store.state_seconds_by_day(day, day).get(day, {})
        completed = self.store.completed_task_counts(day, day).get(day, 0)
        stats = self._build(day, seconds, completed)
        existing = self.store.get_daily_stats(day)
        if existing is not None:
            stats.streak = existing.streak
        else:
            stats.streak = self._next_streak(day, stats.signal_score)
        self.store.upsert_daily_stats(stats)
        logger.info(
            "Closed %s: score %d (%s), streak %d",
            day,
            stats.signal_score,
            score_label(stats.signal_score),
            stats.streak,
        )
        return stats

    def close_pending_days(self, today: date | None = None) -> List[DailyStats]:
        """Close every past day that has samples but no stats row, oldest first."""

        today = today or self._today()
        closed = []
        for day in self.store.sample_days_before(today):
            if self.store.get_daily_stats(day) is None:
                closed.append(self.close_day(day))
        return closed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self.clock().date()

    @staticmethod
    def _minutes(per_state: Mapping[ActivityState, float]) -> tuple[int, int, int]:
        return (
            round_half_up(per_state.get(ActivityState.GREEN, 0.0) / 60),
            round_half_up(per_state.get(ActivityState.AMBER, 0.0) / 60),
            round_half_up(per_state.get(ActivityState.RED, 0.0) / 60),
        )

    def _build(self, day: date, per_state: Mapping[ActivityState, float], tasks_completed: int) -> DailyStats:
        green, amber, red = self._minutes(per_state)
        return DailyStats(
            date=day,
            green_minutes=green,
            amber_minutes=amber,
            red_minutes=red,
            signal_score=calculate_signal_score(green, amber, red),
            tasks_completed=tasks_completed,
        )

    def _next_streak(
        self,
        day: date,
        score: int,
        *,
        known: Mapping[date, DailyStats] | None = None,
    ) -> int:
        if not self.is_productive(score):
            return 0
        previous_day = day - timedelta(days=1)
        previous = (known or {}).get(previous_day) or self.store.get_daily_stats(previous_day)
        return (previous.streak if previous else 0) + 1
