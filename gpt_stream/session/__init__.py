"""Session management utilities exposed for package consumers."""
from .history import CommandHistory
from .manager import SessionBusy, SessionStore, clean_generated_title, truncate_title
from .models import Session, SessionMode, SessionStatus
from .prompt_builder import build_prompt

__all__ = [
    "CommandHistory",
    "Session",
    "SessionBusy",
    "SessionMode",
    "SessionStatus",
    "SessionStore",
    "build_prompt",
    "clean_generated_title",
    "truncate_title",
]
