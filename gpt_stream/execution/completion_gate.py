"""Accept/reject decision for inline point-completion output."""
from __future__ import annotations

from enum import Enum
from typing import Awaitable, Callable, Optional

from gpt_stream.core.notifications import Notifier
from gpt_stream.core.utils.logger import get_logger

from .delivery import MarkerTarget, StreamDeliverer

LOGGER = get_logger(__name__)

KeyReader = Callable[[], Awaitable[str]]


class GateOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class GateAlreadyResolved(RuntimeError):
    """Raised when a decision is made on a gate that already has one."""


class CompletionGate:
    """One-shot decision point over text streamed at a marker.

    Either outcome closes the deliverer, so chunks that arrive after the
    decision are dropped instead of landing in the buffer.
    """

    def __init__(
        self,
        target: MarkerTarget,
        deliverer: StreamDeliverer,
        *,
        accept_key: str = "\t",
        notifier: Optional[Notifier] = None,
        on_resolved: Optional[Callable[[GateOutcome], None]] = None,
    ) -> None:
        self.target = target
        self.deliverer = deliverer
        self.accept_key = accept_key
        self.notifier = notifier
        self.on_resolved = on_resolved
        self.outcome: Optional[GateOutcome] = None
        self.overlay = target.buffer.add_overlay(target.start, target.insertion, face="gpt-completion")

    @property
    def resolved(self) -> bool:
        return self.outcome is not None

    @property
    def pending_text(self) -> str:
        start, end = self.target.delivered_range()
        return self.target.buffer.read_range(start, end)

    async def wait(self, read_key: KeyReader) -> GateOutcome:
        """Block this flow until one key arrives, then resolve with it."""
        key = await read_key()
        return self.resolve(key)

    def resolve(self, key: str) -> GateOutcome:
        if key == self.accept_key:
            return self.accept()
        return self.reject()

    def accept(self) -> GateOutcome:
        self._close(GateOutcome.ACCEPTED)
        LOGGER.debug("Completion accepted (%d chars)", len(self.deliverer.delivered))
        self._finish(GateOutcome.ACCEPTED)
        return GateOutcome.ACCEPTED

    def reject(self) -> GateOutcome:
        self._close(GateOutcome.REJECTED)
        buffer = self.target.buffer
        if not buffer.killed:
            start, end = self.target.delivered_range()
            buffer.delete(start, end)
        if self.notifier is not None:
            self.notifier.notify("Completion canceled.")
        self._finish(GateOutcome.REJECTED)
        return GateOutcome.REJECTED

    def _close(self, outcome: GateOutcome) -> None:
        if self.outcome is not None:
            raise GateAlreadyResolved(f"Completion already {self.outcome.value}")
        self.outcome = outcome
        self.deliverer.close()
        self.target.buffer.remove_overlay(self.overlay)

    def _finish(self, outcome: GateOutcome) -> None:
        self.target.release()
        if self.on_resolved is not None:
            self.on_resolved(outcome)


__all__ = ["CompletionGate", "GateAlreadyResolved", "GateOutcome", "KeyReader"]
