"""Delivery sinks applying streamed chunks to text targets."""
from __future__ import annotations

from typing import List, Protocol

from gpt_stream.core.utils.logger import get_logger
from gpt_stream.text.buffer import Marker, TextBuffer

LOGGER = get_logger(__name__)


class DeliveryTarget(Protocol):
    buffer: TextBuffer

    def write(self, text: str) -> None:
        ...

    @property
    def cursor(self) -> int:
        ...


class BufferEndTarget:
    """Chat output: every chunk goes to the end of the buffer."""

    def __init__(self, buffer: TextBuffer) -> None:
        self.buffer = buffer
        self.start = len(buffer)

    def write(self, text: str) -> None:
        self.buffer.append(text)

    @property
    def cursor(self) -> int:
        return len(self.buffer)


class MarkerTarget:
    """Inline output inserted at a live marker.

    ``start`` stays in front of the streamed text and ``insertion`` moves past
    each chunk, so ``[start, insertion)`` always spans exactly what was delivered
    even while the buffer is edited elsewhere.
    """

    def __init__(self, buffer: TextBuffer, position: int) -> None:
        self.buffer = buffer
        self.start: Marker = buffer.create_marker(position)
        self.insertion: Marker = buffer.create_marker(position, insertion_type=True)

    def write(self, text: str) -> None:
        self.buffer.insert_at(self.insertion, text)

    @property
    def cursor(self) -> int:
        return self.insertion.position

    def delivered_range(self) -> tuple[int, int]:
        return self.start.position, self.insertion.position

    def release(self) -> None:
        self.start.detach()
        self.insertion.detach()


def deliver_chunk(target: DeliveryTarget, text: str) -> None:
    """Write ``text`` at the target's insertion cursor."""
    if text:
        target.write(text)


class StreamDeliverer:
    """Sink handed to the process runner; applies chunks in arrival order."""

    def __init__(self, target: DeliveryTarget) -> None:
        self.target = target
        self.closed = False
        self.chunks: List[str] = []
        self.dropped_chars = 0

    def on_chunk(self, text: str) -> None:
        if self.closed:
            self.dropped_chars += len(text)
            LOGGER.debug("Dropping %d chars delivered after close", len(text))
            return
        if self.target.buffer.killed:
            LOGGER.debug("Target buffer %s is gone; closing delivery", self.target.buffer.name)
            self.close()
            self.dropped_chars += len(text)
            return
        deliver_chunk(self.target, text)
        self.chunks.append(text)

    __call__ = on_chunk

    def close(self) -> None:
        self.closed = True

    @property
    def delivered(self) -> str:
        return "".join(self.chunks)


__all__ = [
    "BufferEndTarget",
    "DeliveryTarget",
    "MarkerTarget",
    "StreamDeliverer",
    "deliver_chunk",
]
