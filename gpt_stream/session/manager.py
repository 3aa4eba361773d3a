"""Session lifecycle management."""
from __future__ import annotations

import itertools
import re
from typing import Dict, List, Optional

from gpt_stream.core.utils.constants import (
    DEFAULT_BUFFER_NAME_LENGTH,
    DEFAULT_TITLE_MAX_LENGTH,
    TITLE_ELLIPSIS,
)
from gpt_stream.core.utils.logger import get_logger, session_fields
from gpt_stream.text.buffer import BufferRegistry, TextBuffer

from .models import Session, SessionMode, SessionStatus

LOGGER = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_QUOTES = "\"'`“”‘’"


class SessionBusy(RuntimeError):
    """Raised when a session still has a running model process."""


def truncate_title(title: str, max_length: int = DEFAULT_TITLE_MAX_LENGTH) -> str:
    """Collapse whitespace and cut to ``max_length`` chars plus an ellipsis."""
    text = _WHITESPACE_RE.sub(" ", title).strip()
    if max_length > 0 and len(text) > max_length:
        return text[:max_length] + TITLE_ELLIPSIS
    return text


def clean_generated_title(output: str) -> str:
    """Trim model output down to a bare title line."""
    lines = [line.strip() for line in output.strip().splitlines() if line.strip()]
    first = lines[0] if lines else ""
    if first.lower().startswith("title:"):
        first = first[len("title:") :].strip()
    return first.strip(_QUOTES).strip()


class SessionStore:
    """Process-wide registry of sessions, one output buffer each.

    Ids come from a counter that starts at 1 and never goes back, so an id is
    never reused even after its session is dropped.
    """

    def __init__(
        self,
        buffers: Optional[BufferRegistry] = None,
        *,
        use_named_buffers: bool = True,
        name_length: int = DEFAULT_BUFFER_NAME_LENGTH,
    ) -> None:
        self.buffers = buffers or BufferRegistry()
        self.use_named_buffers = use_named_buffers
        self.name_length = name_length
        self._counter = itertools.count(1)
        self._last_id = 0
        self._sessions: Dict[int, Session] = {}

    @property
    def counter(self) -> int:
        """Id of the most recently created session (0 when none)."""
        return self._last_id

    def display_name(self, session_id: int, title: str) -> str:
        return f"*gpt[{session_id}]: {title}*"

    def create(
        self,
        mode: SessionMode,
        instruction: str,
        buffer: Optional[TextBuffer] = None,
    ) -> Session:
        """Register a session; without ``buffer`` a fresh output buffer is made."""
        session_id = next(self._counter)
        self._last_id = session_id
        title = truncate_title(instruction, self.name_length)
        named = self.use_named_buffers
        owns_target = buffer is None
        if buffer is None:
            name = self.display_name(session_id, title)
            buffer = self.buffers.create(name) if named else TextBuffer(name)
        else:
            named = buffer.name in self.buffers
        session = Session(
            id=session_id,
            target=buffer,
            title=title,
            mode=mode,
            named=named,
            owns_target=owns_target,
        )
        self._sessions[session_id] = session
        LOGGER.debug("Created session %s -> %s", session_id, buffer.name, extra=session_fields(session))
        return session

    def get(self, session_id: int) -> Session:
        self.prune()
        if session_id not in self._sessions:
            raise KeyError(f"Session '{session_id}' does not exist")
        return self._sessions[session_id]

    def find_by_buffer(self, buffer: TextBuffer) -> Optional[Session]:
        for session in reversed(self.sessions()):
            if session.target is buffer:
                return session
        return None

    def sessions(self) -> List[Session]:
        self.prune()
        return list(self._sessions.values())

    def prune(self) -> None:
        """Forget sessions whose target buffer has been killed."""
        for session_id in [sid for sid, session in self._sessions.items() if not session.alive]:
            del self._sessions[session_id]

    def set_status(self, session: Session, status: SessionStatus) -> None:
        if session.status is SessionStatus.CANCELED and status is not SessionStatus.RUNNING:
            LOGGER.debug("Session %s stays canceled (ignoring %s)", session.id, status.value)
            return
        previous = session.status
        session.status = status
        LOGGER.debug(
            "Session %s: %s -> %s",
            session.id,
            previous.value,
            status.value,
            extra=session_fields(session),
        )

    def rename(self, session: Session, title: str) -> str:
        """Give the session a new title and rename its output buffer to match.

        Buffers the session did not create (region or point targets) keep their name.
        """
        session.title = truncate_title(title, self.name_length)
        if not session.owns_target:
            return session.title
        if session.named and session.target.name in self.buffers:
            self.buffers.rename(session.target, self.display_name(session.id, session.title))
        else:
            session.target.name = self.display_name(session.id, session.title)
        return session.title

    def __len__(self) -> int:
        return len(self.sessions())


__all__ = [
    "SessionBusy",
    "SessionStore",
    "clean_generated_title",
    "truncate_title",
]
