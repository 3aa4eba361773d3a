"""In-process text surface: buffers with live markers and a named-buffer registry.

Positions are character offsets in ``[0, len(buffer)]``. A :class:`Marker` is a
live reference into a buffer: every edit before it shifts it by the edit's net
length delta, so output streamed at a marker stays correct while the rest of
the buffer is being edited.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from gpt_stream.core.utils.logger import get_logger

LOGGER = get_logger(__name__)

ChangeListener = Callable[["TextChange"], None]


class BufferError(RuntimeError):
    """Raised for invalid buffer operations (bad ranges, killed buffers)."""


@dataclass(frozen=True)
class TextChange:
    """One edit applied to a buffer: ``removed`` chars at ``start`` replaced by ``inserted``."""

    start: int
    removed: int
    inserted: str

    @property
    def delta(self) -> int:
        return len(self.inserted) - self.removed


class Marker:
    """Position in a buffer that follows edits.

    ``insertion_type`` decides what happens when text is inserted exactly at the
    marker: ``True`` moves the marker past the new text, ``False`` keeps it in
    front of it.
    """

    def __init__(self, buffer: "TextBuffer", position: int, *, insertion_type: bool = False) -> None:
        self.buffer: Optional[TextBuffer] = buffer
        self._position = position
        self.insertion_type = insertion_type

    @property
    def position(self) -> int:
        return self._position

    def _adjust(self, change: TextChange) -> None:
        end = change.start + change.removed
        if change.removed:
            if self._position >= end:
                self._position -= change.removed
            elif self._position > change.start:
                self._position = change.start
        if change.inserted:
            if self._position > change.start or (
                self._position == change.start and self.insertion_type
            ):
                self._position += len(change.inserted)

    def detach(self) -> None:
        """Stop tracking edits; the marker keeps its last position."""
        if self.buffer is not None:
            self.buffer._markers.remove(self)
            self.buffer = None

    def __repr__(self) -> str:
        name = self.buffer.name if self.buffer is not None else None
        return f"Marker({name!r}, {self._position})"


@dataclass
class Overlay:
    """Visual span between two markers (e.g. pending completion text)."""

    start: Marker
    end: Marker
    face: str = "highlight"

    @property
    def span(self) -> tuple[int, int]:
        return self.start.position, self.end.position


class TextTarget(Protocol):
    """Operations the streaming core needs from a text destination."""

    def append(self, text: str) -> None:
        ...

    def insert_at(self, marker: Marker, text: str) -> None:
        ...

    def read_range(self, start: int, end: int) -> str:
        ...

    def create_marker(self, position: int, *, insertion_type: bool = False) -> Marker:
        ...


class TextBuffer:
    """Mutable text container implementing :class:`TextTarget`."""

    def __init__(self, name: str, text: str = "") -> None:
        self.name = name
        self._text = text
        self._markers: List[Marker] = []
        self._listeners: List[ChangeListener] = []
        self.overlays: List[Overlay] = []
        self.killed = False

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)

    def read_range(self, start: int, end: int) -> str:
        self._check_range(start, end)
        return self._text[start:end]

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def append(self, text: str) -> None:
        self.insert(len(self._text), text)

    def insert(self, position: int, text: str) -> None:
        self.replace(position, position, text)

    def insert_at(self, marker: Marker, text: str) -> None:
        if marker.buffer is not self:
            raise BufferError(f"Marker does not belong to buffer {self.name!r}")
        self.insert(marker.position, text)

    def delete(self, start: int, end: int) -> str:
        removed = self.read_range(start, end)
        self.replace(start, end, "")
        return removed

    def replace(self, start: int, end: int, text: str) -> None:
        if self.killed:
            raise BufferError(f"Buffer {self.name!r} has been killed")
        self._check_range(start, end)
        if start == end and not text:
            return
        self._text = self._text[:start] + text + self._text[end:]
        change = TextChange(start=start, removed=end - start, inserted=text)
        for marker in list(self._markers):
            marker._adjust(change)
        for listener in list(self._listeners):
            listener(change)

    # ------------------------------------------------------------------
    # Markers, overlays and listeners
    # ------------------------------------------------------------------

    def create_marker(self, position: int, *, insertion_type: bool = False) -> Marker:
        self._check_range(position, position)
        marker = Marker(self, position, insertion_type=insertion_type)
        self._markers.append(marker)
        return marker

    def add_overlay(self, start: Marker, end: Marker, face: str = "highlight") -> Overlay:
        overlay = Overlay(start=start, end=end, face=face)
        self.overlays.append(overlay)
        return overlay

    def remove_overlay(self, overlay: Overlay) -> None:
        if overlay in self.overlays:
            self.overlays.remove(overlay)

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def kill(self) -> None:
        """Mark the buffer dead and release its markers."""
        self.killed = True
        for marker in list(self._markers):
            marker.detach()
        self.overlays.clear()
        self._listeners.clear()

    def _check_range(self, start: int, end: int) -> None:
        if not 0 <= start <= end <= len(self._text):
            raise BufferError(
                f"Invalid range [{start}, {end}] for buffer {self.name!r} of length {len(self._text)}"
            )

    def __repr__(self) -> str:
        return f"TextBuffer({self.name!r}, len={len(self._text)})"


class BufferRegistry:
    """Named buffers addressable by unique name."""

    def __init__(self) -> None:
        self._buffers: Dict[str, TextBuffer] = {}

    def unique_name(self, base: str) -> str:
        """Return ``base`` or ``base<N>`` so that the name is not taken."""
        if base not in self._buffers:
            return base
        index = 2
        while f"{base}<{index}>" in self._buffers:
            index += 1
        return f"{base}<{index}>"

    def create(self, name: str, text: str = "") -> TextBuffer:
        buffer = TextBuffer(self.unique_name(name), text)
        self._buffers[buffer.name] = buffer
        return buffer

    def get(self, name: str) -> Optional[TextBuffer]:
        return self._buffers.get(name)

    def get_or_create(self, name: str) -> TextBuffer:
        return self._buffers.get(name) or self.create(name)

    def rename(self, buffer: TextBuffer, new_name: str) -> str:
        if self._buffers.get(buffer.name) is buffer:
            del self._buffers[buffer.name]
        buffer.name = self.unique_name(new_name)
        self._buffers[buffer.name] = buffer
        LOGGER.debug("Renamed buffer to %s", buffer.name)
        return buffer.name

    def kill(self, name: str) -> None:
        buffer = self._buffers.pop(name, None)
        if buffer is not None:
            buffer.kill()

    def names(self) -> List[str]:
        return list(self._buffers)

    def __contains__(self, name: object) -> bool:
        return name in self._buffers


__all__ = [
    "BufferError",
    "BufferRegistry",
    "Marker",
    "Overlay",
    "TextBuffer",
    "TextChange",
    "TextTarget",
]
