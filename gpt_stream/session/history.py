"""Instruction history offered as completion candidates."""
from __future__ import annotations

from typing import Iterable, List

from gpt_stream.core.utils.constants import MAX_HISTORY_ENTRIES


class CommandHistory:
    """Append-only list of submitted instructions, oldest first."""

    def __init__(self, entries: Iterable[str] = (), *, max_entries: int = MAX_HISTORY_ENTRIES) -> None:
        self.max_entries = max_entries
        self._entries: List[str] = []
        for entry in entries:
            self.append(entry)

    def append(self, instruction: str) -> None:
        text = instruction.strip()
        if not text:
            return
        self._entries.append(text)
        if self.max_entries > 0 and len(self._entries) > self.max_entries:
            del self._entries[: len(self._entries) - self.max_entries]

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def candidates(self, prefix: str = "") -> List[str]:
        """Most recent first, without duplicates, filtered by ``prefix``."""
        seen = set()
        result: List[str] = []
        for entry in reversed(self._entries):
            if entry in seen or not entry.startswith(prefix):
                continue
            seen.add(entry)
            result.append(entry)
        return result

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CommandHistory"]
