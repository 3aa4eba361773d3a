"""Process-wide selection of project files attached to new sessions."""
from __future__ import annotations

from typing import Iterable, Iterator, List


class ContextSelection:
    """Ordered set of project-relative paths, kept in selection order."""

    def __init__(self, paths: Iterable[str] = ()) -> None:
        self._paths: List[str] = []
        self.select(paths)

    def select(self, paths: Iterable[str]) -> None:
        """Replace the selection; duplicates keep their first position."""
        unique: List[str] = []
        for path in paths:
            if path and path not in unique:
                unique.append(path)
        self._paths = unique

    def clear(self) -> None:
        self._paths = []

    @property
    def paths(self) -> List[str]:
        return list(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def __bool__(self) -> bool:
        return bool(self._paths)

    def __contains__(self, path: object) -> bool:
        return path in self._paths

    def __repr__(self) -> str:
        return f"ContextSelection({self._paths!r})"


__all__ = ["ContextSelection"]
