"""SQLite-backed store for activity samples, daily stats, tasks and app overrides."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections import defaultdict
from contextlib import closing, contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from .errors import StorageError
from .models import ActivitySample, ActivityState, AppClassification, DailyStats, Task, TaskStatus

_TASK_COLUMNS = {
    "title",
    "description",
    "status",
    "priority",
    "category_id",
    "scheduled_date",
    "estimated_days",
    "days_worked",
    "last_worked_date",
    "updated_at",
}


class SignalStore:
    """Persist finalized samples, daily stats and tasks.

    One connection is shared between the sampling thread and readers, so every
    statement runs under a lock and is committed on its own.
    """

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open database {self.db_path}: {exc}") from exc
        self.conn.row_factory = sqlite3.Row
        self._ensure_schema()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                with closing(self.conn.cursor()) as cur:
                    yield cur
                self.conn.commit()
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StorageError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS activity_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    app_name TEXT NOT NULL,
                    window_title TEXT NOT NULL DEFAULT '',
                    state TEXT NOT NULL CHECK(state IN ('green', 'amber', 'red')),
                    duration_seconds REAL NOT NULL DEFAULT 0
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_activity_logs_timestamp
                ON activity_logs(timestamp)
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_stats (
                    date TEXT PRIMARY KEY,
                    green_minutes INTEGER NOT NULL DEFAULT 0,
                    amber_minutes INTEGER NOT NULL DEFAULT 0,
                    red_minutes INTEGER NOT NULL DEFAULT 0,
                    signal_score INTEGER NOT NULL DEFAULT 50,
                    tasks_completed INTEGER NOT NULL DEFAULT 0,
                    streak INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK(status IN ('pending', 'in_progress', 'completed', 'deferred')),
                    priority INTEGER NOT NULL DEFAULT 3 CHECK(priority BETWEEN 1 AND 5),
                    category_id TEXT,
                    scheduled_date TEXT,
                    estimated_days INTEGER NOT NULL DEFAULT 1,
                    days_worked INTEGER NOT NULL DEFAULT 0,
                    last_worked_date TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS app_classifications (
                    app_name TEXT PRIMARY KEY COLLATE NOCASE,
                    state TEXT NOT NULL CHECK(state IN ('green', 'amber', 'red')),
                    keywords TEXT NOT NULL DEFAULT '[]'
                )
                """
            )

    # ------------------------------------------------------------------
    # Activity samples
    # ------------------------------------------------------------------

    def append_sample(self, sample: ActivitySample) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO activity_logs (timestamp, app_name, window_title, state, duration_seconds)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    sample.timestamp.isoformat(),
                    sample.app_name,
                    sample.window_title,
                    sample.state.value,
                    float(sample.duration_seconds),
                ),
            )

    def samples_for_day(self, day: date) -> List[ActivitySample]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM activity_logs WHERE date(timestamp) = ? ORDER BY timestamp, id",
                (day.isoformat(),),
            )
            rows = cur.fetchall()
        return [self._row_to_sample(row) for row in rows]

    def state_seconds_by_day(self, start: date, end: date) -> Dict[date, Dict[ActivityState, float]]:
        """Sum sample durations per local day and state, for days that have samples."""

        with self._cursor() as cur:
            cur.execute(
                """
                SELECT date(timestamp) AS day, state, SUM(duration_seconds) AS seconds
                FROM activity_logs
                WHERE date(timestamp) BETWEEN ? AND ?
                GROUP BY day, state
                ORDER BY day
                """,
                (start.isoformat(), end.isoformat()),
            )
            rows = cur.fetchall()
        result: Dict[date, Dict[ActivityState, float]] = {}
        for row in rows:
            per_state = result.setdefault(date.fromisoformat(row["day"]), {})
            per_state[ActivityState(row["state"])] = float(row["seconds"] or 0.0)
        return result

    def app_state_seconds_since(self, since: datetime) -> Dict[str, Dict[ActivityState, float]]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT app_name, state, SUM(duration_seconds) AS seconds
                FROM activity_logs
                WHERE timestamp >= ?
                GROUP BY app_name, state
                """,
                (since.isoformat(),),
            )
            rows = cur.fetchall()
        result: Dict[str, Dict[ActivityState, float]] = defaultdict(dict)
        for row in rows:
            result[row["app_name"]][ActivityState(row["state"])] = float(row["seconds"] or 0.0)
        return dict(result)

    def sample_days_before(self, day: date) -> List[date]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT DISTINCT date(timestamp) AS day
                FROM activity_logs
                WHERE date(timestamp) < ?
                ORDER BY day
                """,
                (day.isoformat(),),
            )
            rows = cur.fetchall()
        return [date.fromisoformat(row["day"]) for row in rows]

    # ------------------------------------------------------------------
    # Daily stats
    # ------------------------------------------------------------------

    def upsert_daily_stats(self, stats: DailyStats) -> None:
        """Insert the row, or refresh its aggregates while keeping the stored streak."""

        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO daily_stats (
                    date, green_minutes, amber_minutes, red_minutes,
                    signal_score, tasks_completed, streak
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    green_minutes=excluded.green_minutes,
                    amber_minutes=excluded.amber_minutes,
                    red_minutes=excluded.red_minutes,
                    signal_score=excluded.signal_score,
                    tasks_completed=excluded.tasks_completed
                """,
                (
                    stats.date.isoformat(),
                    stats.green_minutes,
                    stats.amber_minutes,
                    stats.red_minutes,
                    stats.signal_score,
                    stats.tasks_completed,
                    stats.streak,
                ),
            )

    def get_daily_stats(self, day: date) -> Optional[DailyStats]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM daily_stats WHERE date = ?", (day.isoformat(),))
            row = cur.fetchone()
        return self._row_to_daily_stats(row) if row else None

    def latest_daily_stats(self) -> Optional[DailyStats]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM daily_stats ORDER BY date DESC LIMIT 1")
            row = cur.fetchone()
        return self._row_to_daily_stats(row) if row else None

    def daily_stats_between(self, start: date, end: date) -> Dict[date, DailyStats]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT * FROM daily_stats WHERE date BETWEEN ? AND ? ORDER BY date",
                (start.isoformat(), end.isoformat()),
            )
            rows = cur.fetchall()
        stats = [self._row_to_daily_stats(row) for row in rows]
        return {item.date: item for item in stats}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task: Task) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO tasks (
                    id, title, description, status, priority, category_id,
                    scheduled_date, estimated_days, days_worked, last_worked_date,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.id,
                    task.title,
                    task.description,
                    task.status.value,
                    task.priority,
                    task.category_id,
                    task.scheduled_date.isoformat() if task.scheduled_date else None,
                    task.estimated_days,
                    task.days_worked,
                    task.last_worked_date.isoformat() if task.last_worked_date else None,
                    task.created_at.isoformat(),
                    task.updated_at.isoformat(),
                ),
            )

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
            row = cur.fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(
        self,
        *,
        statuses: Sequence[TaskStatus] | None = None,
        category_id: str | None = None,
        priority: int | None = None,
    ) -> List[Task]:
        query = "SELECT * FROM tasks WHERE 1=1"
        params: list[Any] = []
        if statuses:
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(status.value for status in statuses)
        if category_id:
            query += " AND category_id = ?"
            params.append(category_id)
        if priority is not None:
            query += " AND priority = ?"
            params.append(priority)
        query += " ORDER BY created_at DESC"
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_task(row) for row in rows]

    def update_task(
        self,
        task_id: str,
        fields: Dict[str, Any],
        *,
        from_statuses: Iterable[TaskStatus] | None = None,
        increment_days_worked: bool = False,
    ) -> int:
        """Apply one UPDATE statement and return the number of rows changed."""

        unknown = set(fields) - _TASK_COLUMNS
        if unknown:
            raise ValueError(f"unknown task columns: {sorted(unknown)}")
        assignments = [f"{column} = ?" for column in fields]
        params: list[Any] = [self._to_db(value) for value in fields.values()]
        if increment_days_worked:
            assignments.append("days_worked = days_worked + 1")
        query = f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?"
        params.append(task_id)
        if from_statuses is not None:
            allowed = [status.value for status in from_statuses]
            if not allowed:
                return 0
            query += f" AND status IN ({', '.join('?' for _ in allowed)})"
            params.extend(allowed)
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def delete_task(self, task_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            return cur.rowcount > 0

    def completed_task_counts(self, start: date, end: date) -> Dict[date, int]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT date(updated_at) AS day, COUNT(*) AS count
                FROM tasks
                WHERE status = 'completed' AND date(updated_at) BETWEEN ? AND ?
                GROUP BY day
                """,
                (start.isoformat(), end.isoformat()),
            )
            rows = cur.fetchall()
        return {date.fromisoformat(row["day"]): int(row["count"]) for row in rows}

    def task_status_counts_since(self, since: datetime) -> Dict[TaskStatus, int]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT status, COUNT(*) AS count FROM tasks WHERE created_at >= ? GROUP BY status",
                (since.isoformat(),),
            )
            rows = cur.fetchall()
        return {TaskStatus(row["status"]): int(row["count"]) for row in rows}

    # ------------------------------------------------------------------
    # App classification overrides
    # ------------------------------------------------------------------

    def upsert_app_classification(self, classification: AppClassification) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO app_classifications (app_name, state, keywords)
                VALUES (?, ?, ?)
                ON CONFLICT(app_name) DO UPDATE SET
                    state=excluded.state,
                    keywords=excluded.keywords
                """,
                (
                    classification.app_name,
                    classification.state.value,
                    json.dumps(list(classification.keywords), ensure_ascii=True),
                ),
            )

    def list_app_classifications(self) -> List[AppClassification]:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM app_classifications ORDER BY app_name")
            rows = cur.fetchall()
        return [
            AppClassification(
                app_name=row["app_name"],
                state=ActivityState(row["state"]),
                keywords=list(json.loads(row["keywords"])),
            )
            for row in rows
        ]

    def delete_app_classification(self, app_name: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM app_classifications WHERE app_name = ?", (app_name,))
            return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_db(value: Any) -> Any:
        if isinstance(value, TaskStatus):
            return value.value
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value

    @staticmethod
    def _optional_date(value: str | None) -> Optional[date]:
        return date.fromisoformat(value[:10]) if value else None

    @staticmethod
    def _row_to_sample(row: sqlite3.Row) -> ActivitySample:
        return ActivitySample(
            app_name=row["app_name"],
            window_title=row["window_title"],
            state=ActivityState(row["state"]),
            duration_seconds=float(row["duration_seconds"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )

    @staticmethod
    def _row_to_daily_stats(row: sqlite3.Row) -> DailyStats:
        return DailyStats(
            date=date.fromisoformat(row["date"]),
            green_minutes=int(row["green_minutes"]),
            amber_minutes=int(row["amber_minutes"]),
            red_minutes=int(row["red_minutes"]),
            signal_score=int(row["signal_score"]),
            tasks_completed=int(row["tasks_completed"]),
            streak=int(row["streak"]),
        )

    @classmethod
    def _row_to_task(cls, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=int(row["priority"]),
            category_id=row["category_id"],
            scheduled_date=cls._optional_date(row["scheduled_date"]),
            estimated_days=int(row["estimated_days"]),
            days_worked=int(row["days_worked"]),
            last_worked_date=cls._optional_date(row["last_worked_date"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def close(self) -> None:
        with self._lock:
            self.conn.close()
