"""Core configuration, logging and state helpers."""
from __future__ import annotations

from .utils import (
    JsonStateStore,
    Settings,
    configure_logging,
    get_logger,
    load_settings,
)

__all__ = [
    "JsonStateStore",
    "Settings",
    "configure_logging",
    "get_logger",
    "load_settings",
]
