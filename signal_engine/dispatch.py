"""Nudge dispatch: pick a message and decide whether to raise a system notification."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Callable, Optional

from .models import NudgeConfig, NudgeEvent

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Signal Check"

FALLBACK_MESSAGES = [
    "You've been drifting for a while. Time to refocus?",
    "Signal check: Is this moving the needle?",
    "Noise detected. What's the priority right now?",
    "The mission awaits. Ready to return?",
    "Drift alert! Let's get back on track.",
]

MessageProvider = Callable[[NudgeEvent], str]
Notifier = Callable[[str, str], None]


@dataclass(slots=True)
class DispatchOutcome:
    status: str
    detail: str = ""
    message: Optional[str] = None


def log_notifier(title: str, message: str) -> None:
    logger.info("%s: %s", title, message)


class NudgeDispatcher:
    """Turns a :class:`NudgeEvent` into a user-facing message.

    ``ai_nudges_enabled`` decides whether the injected message provider is
    asked first; ``show_system_notifications`` decides whether the notifier
    is called at all. Neither flag touches the drift state machine.
    """

    def __init__(
        self,
        config_provider: Callable[[], NudgeConfig],
        *,
        message_provider: MessageProvider | None = None,
        notifier: Notifier | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config_provider = config_provider
        self.message_provider = message_provider
        self.notifier = notifier or log_notifier
        self.rng = rng or random.Random()
        self.last_outcome: Optional[DispatchOutcome] = None

    def __call__(self, event: NudgeEvent) -> DispatchOutcome:
        return self.dispatch(event)

    def dispatch(self, event: NudgeEvent) -> DispatchOutcome:
        config = self.config_provider()
        message, source = self._compose(event, config)
        if not config.show_system_notifications:
            outcome = DispatchOutcome(status="suppressed", detail="system notifications disabled", message=message)
        else:
            try:
                self.notifier(NOTIFICATION_TITLE, message)
            except Exception as exc:  # pragma: no cover - runtime safeguard
                logger.exception("Notifier failed for nudge on %s", event.current_app)
                outcome = DispatchOutcome(status="failed", detail=str(exc), message=message)
            else:
                outcome = DispatchOutcome(status="notified", detail=source, message=message)
        self.last_outcome = outcome
        return outcome

    def fallback_message(self) -> str:
        return self.rng.choice(FALLBACK_MESSAGES)

    def _compose(self, event: NudgeEvent, config: NudgeConfig) -> tuple[str, str]:
        if config.ai_nudges_enabled and self.message_provider is not None:
            try:
                message = self.message_provider(event)
            except Exception:
                logger.exception("Message provider failed; using a fallback nudge")
            else:
                if message and message.strip():
                    return message.strip(), "provider"
                logger.warning("Message provider returned an empty nudge; using a fallback")
        return self.fallback_message(), "fallback"
