"""Sampling loop state: turns foreground-window ticks into coalesced activity samples."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Callable, Dict, Optional

from .active_window import ActivitySource
from .classifier import StateClassifier
from .errors import ActivitySourceError, StorageError
from .models import ActivitySample, ActivityState, ActivityStateChange
from .storage import SignalStore
from .utils import local_now, monotonic_ms

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OpenSample:
    """The sample currently growing; not visible to readers until finalized."""

    app_name: str
    window_title: str
    state: ActivityState
    started_at: datetime
    started_ms: float
    last_ms: float

    def same_activity(self, app_name: str, window_title: str, state: ActivityState) -> bool:
        return (self.app_name, self.window_title, self.state) == (app_name, window_title, state)

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.last_ms - self.started_ms) / 1000.0)


class ActivityMonitor:
    """Classifies the foreground window once per tick and persists finished samples.

    The monitor does not own a timer. Whoever drives it (normally
    :class:`signal_engine.service.SignalService`) calls :meth:`tick` on the
    sampling cadence and forwards the returned state to the drift detector.
    """

    def __init__(
        self,
        source: ActivitySource,
        classifier: StateClassifier,
        store: SignalStore,
        *,
        max_tick_gap_ms: float = 60_000,
        clock: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.source = source
        self.classifier = classifier
        self.store = store
        self.max_tick_gap_ms = max_tick_gap_ms
        self.clock = clock
        self.wall_clock = wall_clock
        self._running = False
        self._paused = False
        self._open: Optional[_OpenSample] = None
        self._current_state: Optional[ActivityState] = None
        self._current_app: Optional[str] = None
        self._current_title: Optional[str] = None
        self._last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_paused(self) -> bool:
        return self._paused

    def start(self) -> bool:
        if self._running:
            return False
        self._running = True
        logger.info("Activity monitor started")
        return True

    def stop(self, *, now_ms: float | None = None) -> None:
        if not self._running:
            return
        self._close_open(self.clock() if now_ms is None else now_ms)
        self._running = False
        logger.info("Activity monitor stopped")

    def toggle_pause(self, *, now_ms: float | None = None) -> bool:
        self._paused = not self._paused
        if self._paused:
            self._close_open(self.clock() if now_ms is None else now_ms)
            logger.info("Activity tracking paused")
        else:
            logger.info("Activity tracking resumed")
        return self._paused

    def get_status(self) -> Dict[str, object]:
        return {
            "is_running": self._running,
            "is_paused": self._paused,
            "current_state": self._current_state.value if self._current_state else None,
            "current_app_name": self._current_app,
            "current_window_title": self._current_title,
        }

    def tick(self, *, now_ms: float | None = None, now: datetime | None = None) -> Optional[ActivityStateChange]:
        """Run one sampling step.

        Returns the classified activity, or ``None`` when the monitor is
        stopped, paused or the source could not resolve a window.
        """

        if not self._running or self._paused:
            return None
        now_ms = self.clock() if now_ms is None else now_ms
        now = self.wall_clock() if now is None else now
        try:
            info = self.source.current()
        except ActivitySourceError as exc:
            self._report_source_error(str(exc))
            return None
        self._last_error = None

        app_name = info.app_label
        window_title = info.title or ""
        state = self.classifier.classify(app_name, window_title)
        state_changed = state != self._current_state
        self._advance(app_name, window_title, state, now_ms, now)
        self._current_state = state
        self._current_app = app_name
        self._current_title = window_title
        logger.debug("tick %s | %s -> %s", app_name, window_title, state.value)
        return ActivityStateChange(
            app_name=app_name,
            window_title=window_title,
            state=state,
            state_changed=state_changed,
        )

    # ------------------------------------------------------------------
    # Sample bookkeeping
    # ------------------------------------------------------------------

    def _advance(
        self,
        app_name: str,
        window_title: str,
        state: ActivityState,
        now_ms: float,
        now: datetime,
    ) -> None:
        current = self._open
        if current is not None:
            gap = now_ms - current.last_ms
            if gap < 0 or gap > self.max_tick_gap_ms:
                logger.info("Clock gap of %.0f ms detected; closing sample without the gap", gap)
                self._close_open(None)
                current = None
        if current is not None:
            current.last_ms = now_ms
            if now.date() > current.started_at.date():
                current = self._split_at_midnight(current, now)
            if not current.same_activity(app_name, window_title, state):
                self._close_open(None)
                current = None
        if current is None:
            self._open = _OpenSample(
                app_name=app_name,
                window_title=window_title,
                state=state,
                started_at=now,
                started_ms=now_ms,
                last_ms=now_ms,
            )

    def _split_at_midnight(self, current: _OpenSample, now: datetime) -> _OpenSample:
        midnight = datetime.combine(now.date(), time.min)
        total_ms = current.last_ms - current.started_ms
        before_ms = (midnight - current.started_at).total_seconds() * 1000.0
        before_ms = min(max(before_ms, 0.0), total_ms)
        self._write(
            ActivitySample(
                app_name=current.app_name,
                window_title=current.window_title,
                state=current.state,
                duration_seconds=before_ms / 1000.0,
                timestamp=current.started_at,
            )
        )
        self._open = _OpenSample(
            app_name=current.app_name,
            window_title=current.window_title,
            state=current.state,
            started_at=midnight,
            started_ms=current.last_ms - (total_ms - before_ms),
            last_ms=current.last_ms,
        )
        return self._open

    def _close_open(self, now_ms: float | None) -> None:
        current = self._open
        self._open = None
        if current is None:
            return
        if now_ms is not None and now_ms - current.last_ms <= self.max_tick_gap_ms:
            current.last_ms = max(current.last_ms, now_ms)
        self._write(
            ActivitySample(
                app_name=current.app_name,
                window_title=current.window_title,
                state=current.state,
                duration_seconds=current.duration_seconds,
                timestamp=current.started_at,
            )
        )

    def _write(self, sample: ActivitySample) -> None:
        if sample.duration_seconds <= 0:
            return
        try:
            self.store.append_sample(sample)
        except StorageError:
            logger.exception("Failed to persist activity sample for %s", sample.app_name)

    def _report_source_error(self, message: str) -> None:
        if message != self._last_error:
            logger.warning("Foreground window unavailable: %s", message)
            self._last_error = message
        else:
            logger.debug("Foreground window still unavailable: %s", message)
