"""Error taxonomy shared by the engine and its tool surface."""

from __future__ import annotations

from typing import Any, Dict


class SignalEngineError(Exception):
    """Base class for every error raised deliberately by the engine."""

    kind = "error"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind, "message": str(self)}


class ActivitySourceError(SignalEngineError):
    """The foreground window could not be resolved for this tick."""

    kind = "source_failure"


class ArgumentError(SignalEngineError):
    """An operation was called with malformed or out-of-range arguments."""

    kind = "validation_error"

    def __init__(self, message: str, *, details: list | None = None) -> None:
        super().__init__(message)
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(SignalEngineError):
    """A referenced task or resource does not exist."""

    kind = "not_found"

    def __init__(self, resource: str, resource_id: str) -> None:
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class InvalidTransitionError(SignalEngineError):
    """A task lifecycle operation is not allowed from the task's current status."""

    kind = "invalid_transition"


class StorageError(SignalEngineError):
    """Reading from or writing to the sqlite store failed."""

    kind = "storage_error"
