"""Signal engine: activity classification, drift nudges, daily signal score and task queue."""

from .active_window import ActiveWindowInfo, ActiveWindowProvider, TimeoutActivitySource
from .classifier import StateClassifier
from .config import EngineSettings
from .drift import DriftDetector
from .models import ActivitySample, ActivityState, DailyStats, NudgeConfig, NudgeEvent, Task, TaskStatus
from .monitor import ActivityMonitor
from .scoring import ScoreEngine, calculate_signal_score
from .service import SignalService
from .storage import SignalStore
from .tasks import TaskService, backlog, signal_queue
from .tools import ToolRegistry

__all__ = [
    "SignalService",
    "ActivityMonitor",
    "ActiveWindowProvider",
    "ActiveWindowInfo",
    "TimeoutActivitySource",
    "StateClassifier",
    "DriftDetector",
    "ScoreEngine",
    "calculate_signal_score",
    "TaskService",
    "signal_queue",
    "backlog",
    "SignalStore",
    "ToolRegistry",
    "EngineSettings",
    "ActivitySample",
    "ActivityState",
    "DailyStats",
    "NudgeConfig",
    "NudgeEvent",
    "Task",
    "TaskStatus",
]
