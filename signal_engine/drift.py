"""Drift detection and nudge timing with cooldown and per-app snooze."""

from __future__ import annotations

import logging
import threading
from dataclasses import fields, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .errors import ArgumentError
from .models import ActivityState, DriftPhase, DriftStatus, NudgeConfig, NudgeEvent, SnoozeEntry
from .utils import local_now, monotonic_ms

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = {item.name for item in fields(NudgeConfig)}
_DURATION_FIELDS = {"first_nudge_threshold_ms", "nudge_cooldown_ms"}


class DriftDetector:
    """State machine deciding when a non-GREEN stretch deserves a nudge.

    ``evaluate`` is called once per sampling tick with the classified state.
    A drift episode starts on the first non-GREEN tick and ends on GREEN.
    A nudge fires when the episode is at least ``first_nudge_threshold_ms``
    long, the current app is not snoozed and the previous nudge (for any
    app) is at least ``nudge_cooldown_ms`` old. After firing, the detector
    re-arms and keeps drifting until the state turns GREEN. Returning to
    GREEN also clears the episode's nudge count and app, and the length of
    every ended episode is added to a per-day total until ``start_new_day``.

    All durations come from the monotonic ``clock``. A backward step, or a
    forward step larger than ``max_tick_gap_ms`` (sleep/resume), discards
    the current episode instead of reporting the gap as drift.
    """

    def __init__(
        self,
        config: NudgeConfig | None = None,
        *,
        max_tick_gap_ms: float = 60_000,
        clock: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._config = replace(config) if config else NudgeConfig()
        self.max_tick_gap_ms = max_tick_gap_ms
        self.clock = clock
        self.wall_clock = wall_clock
        self._lock = threading.Lock()
        self._phase = DriftPhase.ON_TRACK
        self._episode_start_ms: Optional[float] = None
        self._last_eval_ms: Optional[float] = None
        self._last_nudge_ms: Optional[float] = None
        self._current_app = ""
        self._nudge_count = 0
        self._drift_ms_today = 0.0
        self._day_floor_ms: Optional[float] = None
        self._snoozes: Dict[str, SnoozeEntry] = {}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, state: ActivityState, app_name: str, now_ms: float | None = None) -> Optional[NudgeEvent]:
        with self._lock:
            now = self.clock() if now_ms is None else now_ms
            if self._last_eval_ms is not None:
                step = now - self._last_eval_ms
                if step < 0 or step > self.max_tick_gap_ms:
                    logger.info("Clock jump of %.0f ms; resetting drift episode", step)
                    self._end_episode(self._last_eval_ms)
                    if step < 0:
                        self._last_nudge_ms = None
            self._last_eval_ms = now

            if state is ActivityState.GREEN:
                if self._episode_start_ms is not None:
                    logger.debug("Back on track after %.0f ms", now - self._episode_start_ms)
                self._end_episode(now)
                self._nudge_count = 0
                self._current_app = ""
                return None

            self._current_app = app_name

            if self._episode_start_ms is None:
                self._episode_start_ms = now
                logger.debug("Drift episode started in %s", app_name)
            drift_ms = now - self._episode_start_ms
            snoozed = self._is_snoozed(app_name, now)
            if (
                drift_ms >= self._config.first_nudge_threshold_ms
                and not snoozed
                and self._cooldown_elapsed(now)
            ):
                self._last_nudge_ms = now
                self._nudge_count += 1
                self._phase = DriftPhase.NUDGED
                logger.info("Nudge #%d for %s after %.0f ms of drift", self._nudge_count, app_name, drift_ms)
                return NudgeEvent(current_app=app_name, drift_duration_ms=drift_ms, timestamp=self.wall_clock())
            self._phase = DriftPhase.SNOOZED if snoozed else DriftPhase.DRIFTING
            return None

    def reset(self) -> None:
        """Forget the current episode, e.g. while tracking is paused."""

        with self._lock:
            self._end_episode(self._last_eval_ms)
            self._last_eval_ms = None

    def start_new_day(self) -> None:
        """Zero the daily drift total and nudge count at local midnight."""

        with self._lock:
            self._drift_ms_today = 0.0
            self._nudge_count = 0
            self._day_floor_ms = self._last_eval_ms if self._episode_start_ms is not None else None

    def _end_episode(self, end_ms: Optional[float]) -> None:
        if self._episode_start_ms is not None and end_ms is not None:
            self._drift_ms_today += self._counted_ms(end_ms)
        self._episode_start_ms = None
        self._day_floor_ms = None
        self._phase = DriftPhase.ON_TRACK

    def _counted_ms(self, end_ms: float) -> float:
        start = self._episode_start_ms
        if self._day_floor_ms is not None:
            start = max(start, self._day_floor_ms)
        return max(0.0, end_ms - start)

    def _cooldown_elapsed(self, now: float) -> bool:
        if self._last_nudge_ms is None:
            return True
        return now - self._last_nudge_ms >= self._config.nudge_cooldown_ms

    # ------------------------------------------------------------------
    # Snooze registry
    # ------------------------------------------------------------------

    def snooze_app(self, app_name: str, minutes: float, now_ms: float | None = None) -> SnoozeEntry:
        if not app_name or not app_name.strip():
            raise ArgumentError("app_name must not be empty")
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
            raise ArgumentError(f"minutes must be a positive number, got {minutes!r}")
        with self._lock:
            now = self.clock() if now_ms is None else now_ms
            key = app_name.strip().lower()
            expires_at = now + minutes * 60_000
            existing = self._snoozes.get(key)
            if existing is not None:
                expires_at = max(expires_at, existing.expires_at_ms)
            entry = SnoozeEntry(app_name=app_name.strip(), expires_at_ms=expires_at)
            self._snoozes[key] = entry
            logger.info("Snoozed nudges for %s for %s minutes", entry.app_name, minutes)
            return replace(entry)

    def active_snoozes(self, now_ms: float | None = None) -> List[SnoozeEntry]:
        with self._lock:
            now = self.clock() if now_ms is None else now_ms
            self._prune_snoozes(now)
            return [replace(entry) for entry in self._snoozes.values()]

    def _is_snoozed(self, app_name: str, now: float) -> bool:
        self._prune_snoozes(now)
        return app_name.strip().lower() in self._snoozes

    def _prune_snoozes(self, now: float) -> None:
        expired = [key for key, entry in self._snoozes.items() if entry.expires_at_ms <= now]
        for key in expired:
            del self._snoozes[key]

    # ------------------------------------------------------------------
    # Config and status
    # ------------------------------------------------------------------

    def get_config(self) -> NudgeConfig:
        with self._lock:
            return replace(self._config)

    def set_config(self, **changes: object) -> NudgeConfig:
        unknown = set(changes) - _CONFIG_FIELDS
        if unknown:
            raise ArgumentError(f"unknown nudge config fields: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            if name in _DURATION_FIELDS:
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                    raise ArgumentError(f"{name} must be a non-negative number of milliseconds")
            elif not isinstance(value, bool):
                raise ArgumentError(f"{name} must be a boolean")
        with self._lock:
            self._config = replace(self._config, **changes)
            return replace(self._config)

    @property
    def phase(self) -> DriftPhase:
        with self._lock:
            return self._phase

    @property
    def nudge_count(self) -> int:
        with self._lock:
            return self._nudge_count

    def get_drift_status(self) -> DriftStatus:
        with self._lock:
            drifting = self._episode_start_ms is not None
            duration = 0.0
            today = self._drift_ms_today
            if drifting and self._last_eval_ms is not None:
                duration = self._last_eval_ms - self._episode_start_ms
                today += self._counted_ms(self._last_eval_ms)
            return DriftStatus(
                is_drifting=drifting,
                drift_duration_ms=duration,
                current_app=self._current_app,
                phase=self._phase,
                nudge_count=self._nudge_count,
                drift_ms_today=today,
            )
