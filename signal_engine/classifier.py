"""Rule-based classification of foreground activity into GREEN/AMBER/RED."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping

from .models import ActivityState, AppClassification


@dataclass(slots=True, frozen=True)
class PatternRule:
    """Regex rule matched against the window title, or the app name when ``on_app``."""

    pattern: re.Pattern
    state: ActivityState
    on_app: bool = False

    def match(self, app_name: str, window_title: str) -> ActivityState | None:
        subject = app_name if self.on_app else window_title
        if self.pattern.search(subject):
            return self.state
        return None


def app_rule(pattern: str, state: ActivityState) -> PatternRule:
    return PatternRule(re.compile(pattern, re.IGNORECASE), state, on_app=True)


def title_rule(pattern: str, state: ActivityState) -> PatternRule:
    return PatternRule(re.compile(pattern, re.IGNORECASE), state)


GREEN = ActivityState.GREEN
RED = ActivityState.RED

DEFAULT_RULES: List[PatternRule] = [
    # Development tools
    app_rule(r"code|studio|terminal|iterm|xcode|intellij|pycharm|vim|emacs", GREEN),
    # Design tools
    app_rule(r"figma|sketch|photoshop|illustrator", GREEN),
    # Notes and planning
    app_rule(r"notion|obsidian|bear|notes", GREEN),
    # Browser titles; YouTube Music is left unclassified
    title_rule(r"^(?!.*music).*- youtube", RED),
    title_rule(r"- (github|gitlab)\b", GREEN),
    title_rule(r"- (stack overflow|documentation)\b", GREEN),
    title_rule(r"twitter|facebook|instagram|reddit|tiktok|netflix|twitch", RED),
]


class StateClassifier:
    """Maps ``(app_name, window_title)`` to a state; never fails.

    Evaluation order: per-app overrides (exact, case-insensitive), pattern
    rules in list order, then AMBER.
    """

    def __init__(
        self,
        rules: Iterable[PatternRule] | None = None,
        overrides: Iterable[AppClassification] | Mapping[str, ActivityState] = (),
    ) -> None:
        self.rules = list(DEFAULT_RULES if rules is None else rules)
        self._overrides: dict[str, AppClassification] = {}
        self.set_overrides(overrides)

    def set_overrides(self, overrides: Iterable[AppClassification] | Mapping[str, ActivityState]) -> None:
        if isinstance(overrides, Mapping):
            overrides = [AppClassification(app_name=name, state=state) for name, state in overrides.items()]
        self._overrides = {item.app_name.lower(): item for item in overrides}

    def classify(self, app_name: str | None, window_title: str | None) -> ActivityState:
        app_name = app_name or ""
        window_title = window_title or ""
        override = self._overrides.get(app_name.lower())
        if override is not None:
            return self._keyword_state(window_title, override.keywords) or override.state
        for rule in self.rules:
            state = rule.match(app_name, window_title)
            if state is not None:
                return state
        return ActivityState.AMBER

    @staticmethod
    def _keyword_state(window_title: str, keywords: Iterable[str]) -> ActivityState | None:
        lower_title = window_title.lower()
        for keyword in keywords:
            if keyword.startswith("!") and keyword[1:].lower() in lower_title:
                return ActivityState.RED
            if keyword.startswith("+") and keyword[1:].lower() in lower_title:
                return ActivityState.GREEN
        return None
