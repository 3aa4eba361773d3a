"""Logging setup that tags every record with the session it belongs to.

Flows bind the session they are driving with :func:`bind_session`; records
emitted afterwards in the same context carry its id and mode. Lifecycle lines
pass :func:`session_fields` as ``extra`` so the status travels with them.
"""
from __future__ import annotations

import contextvars
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

UNBOUND = "-"

_ACTIVE_SESSION: contextvars.ContextVar[Tuple[str, str]] = contextvars.ContextVar(
    "gpt_stream_session", default=(UNBOUND, UNBOUND)
)

TEXT_FORMAT = "%(asctime)s %(levelname)s [session %(session_id)s/%(session_mode)s] %(name)s: %(message)s"


class SessionFilter(logging.Filter):
    """Stamp records with the bound session unless the call site supplied one."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id, mode = _ACTIVE_SESSION.get()
        if not hasattr(record, "session_id"):
            record.session_id = session_id
        if not hasattr(record, "session_mode"):
            record.session_mode = mode
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session_id": getattr(record, "session_id", UNBOUND),
            "mode": getattr(record, "session_mode", UNBOUND),
        }
        status = getattr(record, "session_status", None)
        if status is not None:
            payload["status"] = status
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def configure_logging(level: str = "INFO", *, structured: bool = False) -> None:
    """Route root logging to stderr, as text or JSON lines."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(SessionFilter())
    handler.setFormatter(StructuredFormatter() if structured else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)


def bind_session(session: Optional[Any]) -> None:
    """Make ``session`` (anything with ``id`` and ``mode``) the one later records refer to."""
    if session is None:
        _ACTIVE_SESSION.set((UNBOUND, UNBOUND))
    else:
        _ACTIVE_SESSION.set((str(session.id), session.mode.value))


def bound_session() -> Tuple[str, str]:
    return _ACTIVE_SESSION.get()


def session_fields(session: Any) -> Dict[str, str]:
    """``extra`` mapping describing ``session`` for a single log call."""
    return {
        "session_id": str(session.id),
        "session_mode": session.mode.value,
        "session_status": session.status.value,
    }


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name if name else "gpt_stream")


__all__ = [
    "StructuredFormatter",
    "bind_session",
    "bound_session",
    "configure_logging",
    "get_logger",
    "session_fields",
]
