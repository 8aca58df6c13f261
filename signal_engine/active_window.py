"""Foreground window sources for the activity monitor."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

import psutil

from .errors import ActivitySourceError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ActiveWindowInfo:
    """Details describing the current foreground window."""

    title: str
    process_name: str
    process_path: Optional[Path] = None
    handle: int = 0
    timestamp: Optional[datetime] = None

    @property
    def app_label(self) -> str:
        if self.process_name:
            return self.process_name
        if self.process_path:
            return self.process_path.name
        return "Unknown"


class ActivitySource(Protocol):
    """Anything that can report the foreground window.

    ``current`` raises :class:`ActivitySourceError` when the window cannot be
    resolved (permissions, platform errors, nothing focused).
    """

    def current(self) -> ActiveWindowInfo: ...


class ActiveWindowProvider:
    """Windows-specific helper that retrieves foreground window metadata."""

    def __init__(self) -> None:
        self._platform_checked = False
        self._supported = False
        self._init_platform()

    def _init_platform(self) -> None:
        from sys import platform

        self._platform_checked = True
        if not platform.startswith("win"):
            logger.warning("ActiveWindowProvider currently supports only Windows platforms.")
            return
        try:
            import ctypes
            from ctypes import wintypes

            self._ctypes = ctypes  # type: ignore[attr-defined]
            self._wintypes = wintypes  # type: ignore[attr-defined]
            user32 = ctypes.windll.user32
            self._get_foreground_window = user32.GetForegroundWindow
            self._get_window_text_length = user32.GetWindowTextLengthW
            self._get_window_text = user32.GetWindowTextW
            self._get_window_thread_process_id = user32.GetWindowThreadProcessId
        except (ImportError, AttributeError, OSError) as exc:
            logger.exception("Failed to initialise ActiveWindowProvider: %s", exc)
            return
        self._supported = True

    def is_supported(self) -> bool:
        if not self._platform_checked:
            self._init_platform()
        return self._supported

    def current(self) -> ActiveWindowInfo:
        if not self.is_supported():
            raise ActivitySourceError("active window lookup is not supported on this platform")
        hwnd = self._get_foreground_window()
        if not hwnd:
            raise ActivitySourceError("no foreground window")
        title = self._window_title(hwnd)
        pid = self._window_process_id(hwnd)
        process_name, process_path = self._process_details(pid)
        return ActiveWindowInfo(
            title=title,
            process_name=process_name,
            process_path=process_path,
            handle=int(hwnd),
            timestamp=datetime.now(),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _window_title(self, hwnd: int) -> str:
        length = self._get_window_text_length(hwnd)
        if length == 0:
            # Console and UWP windows may report zero length even when text exists.
            length = 1024
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._get_window_text(hwnd, buffer, length + 1)
        return buffer.value.strip()

    def _window_process_id(self, hwnd: int) -> int:
        pid = self._wintypes.DWORD()
        self._get_window_thread_process_id(hwnd, self._ctypes.byref(pid))
        return int(pid.value)

    def _process_details(self, pid: int) -> tuple[str, Optional[Path]]:
        if pid <= 0:
            raise ActivitySourceError(f"foreground window has no owning process (pid={pid})")
        try:
            proc = psutil.Process(pid)
            name = proc.name()
            exe = proc.exe()
        except psutil.AccessDenied as exc:
            raise ActivitySourceError(f"access denied reading process {pid}") from exc
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
            raise ActivitySourceError(f"process {pid} exited before it could be read") from exc
        return name, Path(exe) if exe else None


class TimeoutActivitySource:
    """Runs another source's ``current`` on a worker thread with a deadline.

    A query that is still hanging from an earlier tick makes the next call
    fail immediately instead of queueing behind it.
    """

    def __init__(self, source: ActivitySource, *, timeout_s: float = 2.0) -> None:
        self.source = source
        self.timeout_s = timeout_s
        self._executor: ThreadPoolExecutor | None = None
        self._pending: Future | None = None

    def current(self) -> ActiveWindowInfo:
        if self._pending is not None and not self._pending.done():
            raise ActivitySourceError("previous foreground window query is still running")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="activity-source")
        self._pending = self._executor.submit(self.source.current)
        try:
            return self._pending.result(timeout=self.timeout_s)
        except FutureTimeout as exc:
            raise ActivitySourceError(
                f"foreground window query timed out after {self.timeout_s:.1f}s"
            ) from exc

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._pending = None
