"""User-facing notification sinks."""
from __future__ import annotations

from typing import List, Protocol

from .utils.logger import get_logger

LOGGER = get_logger(__name__)


class Notifier(Protocol):
    """Fire-and-forget message sink (echo area, status bar, stderr...)."""

    def notify(self, message: str) -> None:
        ...


class LoggingNotifier:
    """Default notifier that routes messages to the package logger."""

    def __init__(self, level: int = 20) -> None:
        self.level = level

    def notify(self, message: str) -> None:
        LOGGER.log(self.level, message)


class RecordingNotifier:
    """Keeps every message; handy for embedding and tests."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def notify(self, message: str) -> None:
        self.messages.append(message)


__all__ = ["LoggingNotifier", "Notifier", "RecordingNotifier"]
