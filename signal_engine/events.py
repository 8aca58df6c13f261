"""Listener registry used for nudge and activity-state events."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by :meth:`ListenerRegistry.subscribe`."""

    __slots__ = ("_registry", "_token")

    def __init__(self, registry: "ListenerRegistry", token: int) -> None:
        self._registry = registry
        self._token = token

    @property
    def active(self) -> bool:
        return self._registry.has(self._token)

    def cancel(self) -> bool:
        """Remove the handler; returns False if it was already removed."""

        return self._registry.remove(self._token)


class ListenerRegistry(Generic[T]):
    """Ordered set of handlers for one kind of event.

    Handlers run synchronously in subscription order. A failing handler is
    logged and skipped; it never affects the emitter or the other handlers.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: Dict[int, Callable[[T], object]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[[T], object]) -> Subscription:
        if not callable(handler):
            raise TypeError(f"{self.name} handler must be callable")
        with self._lock:
            token = next(self._tokens)
            self._handlers[token] = handler
        return Subscription(self, token)

    def has(self, token: int) -> bool:
        with self._lock:
            return token in self._handlers

    def remove(self, token: int) -> bool:
        with self._lock:
            return self._handlers.pop(token, None) is not None

    def emit(self, payload: T) -> int:
        """Deliver ``payload`` to every handler; returns how many succeeded."""

        with self._lock:
            handlers = list(self._handlers.values())
        delivered = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("%s listener %r failed", self.name, handler)
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
