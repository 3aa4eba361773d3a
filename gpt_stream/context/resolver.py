"""Resolve which project files to attach to a prompt and format them."""
from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from gpt_stream.core.notifications import Notifier
from gpt_stream.core.utils.constants import DEFAULT_IGNORED_REPO_DIRS, PROJECT_ROOT_MARKERS
from gpt_stream.core.utils.logger import get_logger
from gpt_stream.text.markdown import fence

LOGGER = get_logger(__name__)

CONTEXT_HEADER = "The following project files are provided as context:"
SELECTION_PROMPT = "Add context file (empty to finish): "
DONE_SENTINEL = "[done]"
MAX_UNKNOWN_CHOICES = 3


class ContextUnavailable(RuntimeError):
    """Raised when no project root can be resolved."""


class FileReadFailure(RuntimeError):
    """Raised when a single project file cannot be read."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Could not read {path}: {reason}")
        self.path = path
        self.reason = reason


class ProjectFileProvider(Protocol):
    def list_project_files(self) -> List[str]:
        ...

    def read_file(self, path: str) -> str:
        ...


class Picker(Protocol):
    def pick_one(self, prompt: str, candidates: Sequence[str]) -> Optional[str]:
        ...


def find_project_root(start: Path, markers: Sequence[str] = PROJECT_ROOT_MARKERS) -> Optional[Path]:
    """Return the closest parent of ``start`` holding one of ``markers``."""
    current = start.resolve()
    if current.is_file():
        current = current.parent
    while True:
        if any((current / marker).exists() for marker in markers):
            return current
        if current.parent == current:
            return None
        current = current.parent


class FilesystemProjectProvider:
    """Project files read from disk below a resolved root."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    @classmethod
    def discover(cls, start: Optional[Path] = None) -> "FilesystemProjectProvider":
        root = find_project_root(start or Path.cwd())
        if root is None:
            raise ContextUnavailable(f"No project found above {start or Path.cwd()}")
        return cls(root)

    def list_project_files(self) -> List[str]:
        if not self.root.is_dir():
            raise ContextUnavailable(f"Project root {self.root} does not exist")
        if (self.root / ".git").exists():
            tracked = self._git_ls_files()
            if tracked is not None:
                return tracked
        return self._walk_files()

    def read_file(self, path: str) -> str:
        candidate = (self.root / path).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError:
            raise FileReadFailure(path, "outside of the project root") from None
        try:
            return candidate.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise FileReadFailure(path, str(exc)) from exc

    def _git_ls_files(self) -> Optional[List[str]]:
        try:
            result = subprocess.run(
                ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
                cwd=self.root,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="surrogateescape",
                timeout=10,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.debug("git ls-files failed in %s: %s", self.root, exc)
            return None
        if result.returncode != 0:
            LOGGER.debug("git ls-files exited with %s: %s", result.returncode, result.stderr.strip())
            return None
        return sorted(name for name in result.stdout.split("\0") if name)

    def _walk_files(self) -> List[str]:
        files: List[str] = []
        for directory, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(name for name in dirnames if name not in DEFAULT_IGNORED_REPO_DIRS)
            for filename in sorted(filenames):
                full = Path(directory) / filename
                files.append(full.relative_to(self.root).as_posix())
        return files


class ContextResolver:
    """Turn a list of project paths into a prompt context block."""

    def __init__(self, provider: ProjectFileProvider, notifier: Optional[Notifier] = None) -> None:
        self.provider = provider
        self.notifier = notifier

    def resolve_selected_files(self, paths: Sequence[str]) -> str:
        """Format readable files in order; unreadable ones are reported and skipped."""
        sections: List[str] = []
        included: List[str] = []
        for path in paths:
            try:
                content = self.provider.read_file(path)
            except FileReadFailure as exc:
                LOGGER.warning("Skipping context file %s: %s", path, exc.reason)
                if self.notifier is not None:
                    self.notifier.notify(f"Skipping context file {path}: {exc.reason}")
                continue
            included.append(path)
            sections.append(f"File: {path}\n{fence(content)}\n")
        if not included:
            return ""
        listing = "\n".join(f"- {path}" for path in included)
        return f"{CONTEXT_HEADER}\n{listing}\n\n" + "\n".join(sections)


def resolve_ad_hoc_selection(
    picker: Picker,
    candidates: Sequence[str],
    *,
    prompt: str = SELECTION_PROMPT,
) -> List[str]:
    """Ask for files one at a time until the picker returns nothing.

    Chosen paths are removed from later rounds; the result is in selection order.
    After MAX_UNKNOWN_CHOICES unknown answers in a row the selection ends.
    """
    remaining = list(candidates)
    chosen: List[str] = []
    unknown = 0
    while remaining:
        choice = picker.pick_one(prompt, remaining)
        if not choice or choice == DONE_SENTINEL:
            break
        if choice not in remaining:
            unknown += 1
            LOGGER.debug("Ignoring unknown selection %r (%d/%d)", choice, unknown, MAX_UNKNOWN_CHOICES)
            if unknown >= MAX_UNKNOWN_CHOICES:
                break
            continue
        unknown = 0
        chosen.append(choice)
        remaining.remove(choice)
    return chosen


__all__ = [
    "CONTEXT_HEADER",
    "ContextResolver",
    "ContextUnavailable",
    "DONE_SENTINEL",
    "FileReadFailure",
    "FilesystemProjectProvider",
    "MAX_UNKNOWN_CHOICES",
    "Picker",
    "ProjectFileProvider",
    "find_project_root",
    "resolve_ad_hoc_selection",
]
