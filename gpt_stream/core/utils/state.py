"""State helpers used to share context selection and history between CLI runs."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .constants import MAX_HISTORY_ENTRIES
from .logger import get_logger

LOGGER = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class JsonStateStore:
    """Small JSON document persisted next to the project configuration."""

    state_file: Optional[Path] = None
    _cache: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def load(self) -> Dict[str, Any]:
        """Return the current state data, creating defaults when empty."""
        if self._cache:
            return self._cache
        data: Dict[str, Any] = {}
        if self.state_file is not None and self.state_file.is_file():
            try:
                data = json.loads(self.state_file.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                LOGGER.warning("Ignoring unreadable state file %s: %s", self.state_file, exc)
                data = {}
        if not isinstance(data, dict):
            data = {}
        self._cache = {**self._create_default_state(), **data}
        return self._cache

    def save(self, data: Dict[str, Any]) -> None:
        """Replace the state and write it to disk when a state file is configured."""
        self._validate_state(data)
        self._cache = data
        if self.state_file is None:
            LOGGER.debug("State stored in memory (not persisted)")
            return
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self.state_file.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def update(self, **updates: Any) -> Dict[str, Any]:
        """Update state with automatic timestamping."""
        data = self.load().copy()
        data.update(updates)
        data["last_updated"] = _now()
        self.save(data)
        return data

    def context_selection(self) -> List[str]:
        return list(self.load().get("context_selection") or [])

    def command_history(self) -> List[str]:
        return list(self.load().get("command_history") or [])

    def persist(
        self,
        context_selection: List[str],
        command_history: List[str],
        limit: int = MAX_HISTORY_ENTRIES,
    ) -> None:
        """Store the selection and the newest ``limit`` history entries in one write."""
        if limit > 0:
            command_history = command_history[-limit:]
        self.update(context_selection=list(context_selection), command_history=list(command_history))

    def _create_default_state(self) -> Dict[str, Any]:
        now = _now()
        return {
            "version": "1.0",
            "created_at": now,
            "last_updated": now,
            "context_selection": [],
            "command_history": [],
        }

    def _validate_state(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise ValueError("State must be a dictionary")
        if "last_updated" not in data:
            data["last_updated"] = _now()


__all__ = ["JsonStateStore"]
