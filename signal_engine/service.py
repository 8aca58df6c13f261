"""Tick actor coordinating the monitor, drift detector, scoring and listeners."""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import Future
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .active_window import ActivitySource, TimeoutActivitySource
from .classifier import StateClassifier
from .config import EngineSettings
from .dispatch import MessageProvider, NudgeDispatcher, Notifier
from .drift import DriftDetector
from .errors import StorageError
from .events import ListenerRegistry, Subscription
from .models import ActivityStateChange, DriftStatus, NudgeConfig, NudgeEvent, SnoozeEntry
from .monitor import ActivityMonitor
from .scoring import ScoreEngine
from .storage import SignalStore
from .tasks import TaskService
from .utils import local_now, monotonic_ms

logger = logging.getLogger(__name__)

_STOP = object()


class SignalService:
    """Owns the live state and drives it from a single worker thread.

    While the actor runs, every public call is posted to its inbox and
    answered through a :class:`~concurrent.futures.Future`, so monitor and
    detector state is only ever touched by one thread. Without a running
    actor (tests, one-shot CLI commands) the same calls run inline under a
    lock and ``tick`` can be driven by hand.
    """

    def __init__(
        self,
        store: SignalStore,
        source: ActivitySource,
        *,
        settings: EngineSettings | None = None,
        classifier: StateClassifier | None = None,
        config: NudgeConfig | None = None,
        message_provider: MessageProvider | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = monotonic_ms,
        wall_clock: Callable[[], datetime] = local_now,
    ) -> None:
        self.settings = settings or EngineSettings(db_path=Path(store.db_path))
        self.store = store
        self._owned_source: Optional[TimeoutActivitySource] = None
        if self.settings.source_timeout_s > 0:
            self._owned_source = TimeoutActivitySource(source, timeout_s=self.settings.source_timeout_s)
            source = self._owned_source
        self.source = source
        self.clock = clock
        self.wall_clock = wall_clock
        max_gap_ms = self.settings.max_tick_gap_s * 1000.0

        self.classifier = classifier or StateClassifier(overrides=store.list_app_classifications())
        self.monitor = ActivityMonitor(
            source,
            self.classifier,
            store,
            max_tick_gap_ms=max_gap_ms,
            clock=clock,
            wall_clock=wall_clock,
        )
        self.detector = DriftDetector(
            config or self.settings.nudge_config(),
            max_tick_gap_ms=max_gap_ms,
            clock=clock,
            wall_clock=wall_clock,
        )
        self.scores = ScoreEngine(store, clock=wall_clock)
        self.tasks = TaskService(store, clock=wall_clock)

        self.nudges: ListenerRegistry[NudgeEvent] = ListenerRegistry("nudge")
        self.state_changes: ListenerRegistry[ActivityStateChange] = ListenerRegistry("activity_state")
        self.dispatcher = NudgeDispatcher(
            self.detector.get_config,
            message_provider=message_provider,
            notifier=notifier,
        )
        self._dispatch_subscription = self.nudges.subscribe(self.dispatcher)

        self._lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._inbox: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._current_day: Optional[date] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, *, background: bool = True) -> bool:
        """Start sampling; returns False if it is already running.

        With ``background=False`` no actor thread is spawned and the caller
        drives :meth:`tick` itself.
        """

        with self._state_lock:
            if self._thread is not None or self.monitor.is_running:
                return False
            with self._lock:
                try:
                    self.scores.close_pending_days(self.wall_clock().date())
                except StorageError:
                    logger.exception("Could not close pending days on start")
                self.monitor.start()
                self._current_day = self.wall_clock().date()
            if not background:
                return True
            self._thread = threading.Thread(target=self._run, name="signal-engine", daemon=True)
            self._thread.start()
            logger.info("Signal service started (poll every %.1fs)", self.settings.poll_interval_s)
            return True

    def stop(self) -> None:
        """Flush the in-flight sample and join the actor; no timer survives."""

        # Listeners run on the actor and may call back in while we join, so
        # the thread is detached first and joined without holding _state_lock.
        with self._state_lock:
            thread = self._thread
            self._thread = None
        joined = thread is None or thread is not threading.current_thread()
        if thread is not None:
            self._inbox.put(_STOP)
            if joined:
                thread.join()
        with self._lock:
            if joined:
                self._drain_inbox()
            self.monitor.stop()
            self.detector.reset()
        if self._owned_source is not None:
            self._owned_source.close()
        logger.info("Signal service stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    def _run(self) -> None:
        interval = max(0.05, self.settings.poll_interval_s)
        next_tick = time.monotonic()
        while True:
            timeout = max(0.0, next_tick - time.monotonic())
            try:
                command = self._inbox.get(timeout=timeout)
            except queue.Empty:
                with self._lock:
                    self._safe_tick()
                next_tick += interval
                if next_tick < time.monotonic():
                    next_tick = time.monotonic() + interval
                continue
            if command is _STOP:
                break
            with self._lock:
                self._execute(command)
        with self._lock:
            self.monitor.stop()

    def _safe_tick(self) -> None:
        try:
            self._tick()
        except Exception:  # pragma: no cover - runtime safeguard
            logger.exception("Sampling tick failed")

    @staticmethod
    def _execute(command: tuple) -> None:
        fn, args, kwargs, future = command
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except BaseException as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    def _drain_inbox(self) -> None:
        while True:
            try:
                command = self._inbox.get_nowait()
            except queue.Empty:
                return
            if command is not _STOP:
                self._execute(command)

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        with self._state_lock:
            thread = self._thread
            if thread is not None and threading.current_thread() is not thread:
                future: Future = Future()
                self._inbox.put((fn, args, kwargs, future))
            else:
                future = None
        if future is not None:
            return future.result()
        with self._lock:
            return fn(*args, **kwargs)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> Optional[ActivityStateChange]:
        """Run one sampling and drift step; used directly when no actor runs."""

        return self._call(self._tick)

    def _tick(self) -> Optional[ActivityStateChange]:
        now_ms = self.clock()
        now = self.wall_clock()
        change = self.monitor.tick(now_ms=now_ms, now=now)
        self._roll_day(now.date())
        if change is None:
            return None
        event = self.detector.evaluate(change.state, change.app_name, now_ms)
        if change.state_changed:
            self.state_changes.emit(change)
        if event is not None:
            self.nudges.emit(event)
        return change

    def _roll_day(self, today: date) -> None:
        previous = self._current_day
        self._current_day = today
        if previous is None or previous >= today:
            return
        self.detector.start_new_day()
        try:
            self.scores.close_day(previous)
        except StorageError:
            logger.exception("Could not close day %s", previous)

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    def toggle_pause(self) -> bool:
        return self._call(self._toggle_pause)

    def _toggle_pause(self) -> bool:
        paused = self.monitor.toggle_pause(now_ms=self.clock())
        self.detector.reset()
        return paused

    def snooze_app(self, app_name: str, minutes: float) -> SnoozeEntry:
        return self._call(self.detector.snooze_app, app_name, minutes)

    def get_config(self) -> NudgeConfig:
        return self._call(self.detector.get_config)

    def set_config(self, **changes: Any) -> NudgeConfig:
        return self._call(self.detector.set_config, **changes)

    def get_status(self) -> Dict[str, Any]:
        return self._call(self.monitor.get_status)

    def get_drift_status(self) -> DriftStatus:
        return self._call(self.detector.get_drift_status)

    def on_nudge_triggered(self, handler: Callable[[NudgeEvent], object]) -> Subscription:
        return self.nudges.subscribe(handler)

    def on_activity_state_changed(self, handler: Callable[[ActivityStateChange], object]) -> Subscription:
        return self.state_changes.subscribe(handler)
