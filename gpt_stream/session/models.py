"""Core data structures for streaming session management."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from gpt_stream.text.buffer import TextBuffer

if TYPE_CHECKING:  # pragma: no cover - typing only
    from gpt_stream.execution.process_runner import ProcessHandle


class SessionMode(str, Enum):
    CHAT = "chat"
    FOLLOW_UP = "follow-up"
    REGION_TRANSFORM = "region-transform"
    POINT_COMPLETION = "point-completion"
    TITLE_GENERATION = "title-generation"


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELED}


@dataclass
class Session:
    """One user-initiated model interaction bound to a text buffer."""

    id: int
    target: TextBuffer
    title: str
    mode: SessionMode = SessionMode.CHAT
    status: SessionStatus = SessionStatus.PENDING
    named: bool = True
    owns_target: bool = True
    handle: Optional["ProcessHandle"] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def alive(self) -> bool:
        return not self.target.killed

    @property
    def running(self) -> bool:
        return self.status is SessionStatus.RUNNING

    def transcript(self) -> str:
        return self.target.text
