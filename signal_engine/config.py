"""Process-wide settings for the signal engine."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .models import NudgeConfig

_ENV_PREFIX = "SIGNAL_ENGINE_"
_TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str, default: str) -> str:
    return os.getenv(_ENV_PREFIX + name, default)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(slots=True)
class EngineSettings:
    """Settings for the sampling loop, the store and the nudge defaults."""

    db_path: Path
    poll_interval_s: float = 5.0
    source_timeout_s: float = 2.0
    max_tick_gap_s: float = 60.0
    first_nudge_minutes: float = 10.0
    nudge_cooldown_minutes: float = 5.0
    show_system_notifications: bool = True
    ai_nudges_enabled: bool = True

    @classmethod
    def from_env(cls) -> "EngineSettings":
        default_db = Path.home() / ".signal_engine" / "signal.db"
        return cls(
            db_path=Path(_env("DB_PATH", str(default_db))).expanduser(),
            poll_interval_s=float(_env("POLL_INTERVAL", "5.0")),
            source_timeout_s=float(_env("SOURCE_TIMEOUT", "2.0")),
            max_tick_gap_s=float(_env("MAX_TICK_GAP", "60.0")),
            first_nudge_minutes=float(_env("FIRST_NUDGE_MINUTES", "10")),
            nudge_cooldown_minutes=float(_env("NUDGE_COOLDOWN_MINUTES", "5")),
            show_system_notifications=_env_flag("SYSTEM_NOTIFICATIONS", True),
            ai_nudges_enabled=_env_flag("AI_NUDGES", True),
        )

    def nudge_config(self) -> NudgeConfig:
        return NudgeConfig(
            first_nudge_threshold_ms=int(self.first_nudge_minutes * 60_000),
            nudge_cooldown_ms=int(self.nudge_cooldown_minutes * 60_000),
            show_system_notifications=self.show_system_notifications,
            ai_nudges_enabled=self.ai_nudges_enabled,
        )
