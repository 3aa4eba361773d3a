"""Convenience exports for common utility helpers."""
from __future__ import annotations

from .config import Settings, find_config_in_parents, load_settings
from .logger import (
    bind_session,
    configure_logging,
    get_logger,
    session_fields,
)
from .state import JsonStateStore

__all__ = [
    "JsonStateStore",
    "Settings",
    "bind_session",
    "configure_logging",
    "find_config_in_parents",
    "get_logger",
    "load_settings",
    "session_fields",
]
