"""Public package interface for the gpt-stream client."""
from __future__ import annotations

from importlib import metadata as _metadata

try:  # pragma: no cover - importlib metadata availability varies
    __version__ = _metadata.version("gpt-stream")
except _metadata.PackageNotFoundError:  # pragma: no cover - fallback when not installed
    __version__ = "0.1.0"

from . import context, core, engine, execution, providers, session, text
from .context import ContextResolver, ContextSelection, ContextUnavailable, FilesystemProjectProvider
from .core import JsonStateStore, Settings, configure_logging, get_logger, load_settings
from .engine import ChatOrchestrator
from .execution import (
    CompletionGate,
    GateOutcome,
    ProcessResult,
    ProcessRunner,
    StreamDeliverer,
    SubprocessFailure,
)
from .providers.llm import LLMError, RetryConfig, create_client
from .session import Session, SessionMode, SessionStatus, SessionStore, build_prompt
from .text import BufferRegistry, Marker, TextBuffer

__all__ = [
    "__version__",
    "BufferRegistry",
    "ChatOrchestrator",
    "CompletionGate",
    "ContextResolver",
    "ContextSelection",
    "ContextUnavailable",
    "FilesystemProjectProvider",
    "GateOutcome",
    "JsonStateStore",
    "LLMError",
    "Marker",
    "ProcessResult",
    "ProcessRunner",
    "RetryConfig",
    "Session",
    "SessionMode",
    "SessionStatus",
    "SessionStore",
    "Settings",
    "StreamDeliverer",
    "SubprocessFailure",
    "TextBuffer",
    "build_prompt",
    "configure_logging",
    "context",
    "core",
    "create_client",
    "engine",
    "execution",
    "get_logger",
    "load_settings",
    "providers",
    "session",
    "text",
]
