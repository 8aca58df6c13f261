"""Utilities supporting signal_engine modules."""

from __future__ import annotations

import math
import random
import string
import time
from datetime import date, datetime

from .errors import ArgumentError


_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str, *, size: int = 12) -> str:
    """Generate a short unique identifier with a readable prefix."""

    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(size))
    return f"{prefix}_{suffix}"


def monotonic_ms() -> float:
    """Milliseconds from the monotonic clock; only differences are meaningful."""

    return time.monotonic() * 1000.0


def local_now() -> datetime:
    """Naive local wall-clock time, the representation stored in sqlite."""

    return datetime.now()


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""

    return int(math.floor(value + 0.5))


def parse_date(value: str | date, *, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ArgumentError(f"{field} must be a YYYY-MM-DD date, got {value!r}") from exc

