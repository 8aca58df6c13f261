from datetime import datetime, timedelta

import pytest

from signal_engine.active_window import ActiveWindowInfo
from signal_engine.errors import ActivitySourceError
from signal_engine.models import ActivitySample, ActivityState
from signal_engine.storage import SignalStore


class FakeTime:
    """Monotonic milliseconds and a local wall clock that move together."""

    def __init__(self, start: datetime) -> None:
        self.start = start
        self.ms = 0.0

    def monotonic(self) -> float:
        return self.ms

    def now(self) -> datetime:
        return self.start + timedelta(milliseconds=self.ms)

    def advance(self, ms: float) -> None:
        self.ms += ms


class ScriptedSource:
    """Activity source test double; returns whatever window was set last."""

    def __init__(self, app: str = "Code", title: str = "main.py - project") -> None:
        self.app = app
        self.title = title
        self.error = None
        self.calls = 0

    def show(self, app: str, title: str = "") -> None:
        self.app = app
        self.title = title
        self.error = None

    def fail(self, message: str) -> None:
        self.error = message

    def current(self) -> ActiveWindowInfo:
        self.calls += 1
        if self.error:
            raise ActivitySourceError(self.error)
        return ActiveWindowInfo(title=self.title, process_name=self.app)


def add_sample(store, app, state, seconds, when, title=""):
    store.append_sample(
        ActivitySample(
            app_name=app,
            window_title=title,
            state=ActivityState(state),
            duration_seconds=seconds,
            timestamp=when,
        )
    )


@pytest.fixture
def store(tmp_path):
    signal_store = SignalStore(tmp_path / "signal.db")
    yield signal_store
    signal_store.close()


@pytest.fixture
def fake_time():
    return FakeTime(datetime(2026, 10, 14, 9, 0, 0))


@pytest.fixture
def source():
    return ScriptedSource()
