"""Opt-in trace logging for binding and render activity."""
from __future__ import annotations

import threading
from pathlib import Path

__all__ = ["enable_trace_logging", "trace_logging_enabled", "log_trace", "set_trace_path"]


_TRACE_ENABLED = False
_LOG_PATH = Path("logs/sigblocks_trace.log")
_LOG_LOCK = threading.Lock()


def enable_trace_logging(enabled: bool) -> None:
    """Enable or disable the binding/render trace log."""

    global _TRACE_ENABLED
    _TRACE_ENABLED = bool(enabled)


def trace_logging_enabled() -> bool:
    """Return ``True`` when trace logging is enabled."""

    return _TRACE_ENABLED


def set_trace_path(path: str | Path) -> Path:
    """Redirect the trace log to ``path`` and return the previous location."""

    global _LOG_PATH
    previous = _LOG_PATH
    _LOG_PATH = Path(path)
    return previous


def log_trace(message: str) -> None:
    """Append ``message`` to the trace log when logging is enabled.

    Failures to create or write the log are ignored; tracing must never take
    down a render.
    """

    if not _TRACE_ENABLED:
        return
    try:
        _LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        return
    try:
        with _LOG_LOCK:
            with _LOG_PATH.open("a", encoding="utf-8") as handle:
                handle.write(f"{message}\n")
    except OSError:
        return
