"""Model subprocess supervision and output delivery."""
from .completion_gate import CompletionGate, GateAlreadyResolved, GateOutcome
from .delivery import BufferEndTarget, MarkerTarget, StreamDeliverer, deliver_chunk
from .process_runner import (
    ProcessHandle,
    ProcessResult,
    ProcessRunner,
    ProcessState,
    SubprocessFailure,
    describe_returncode,
)

__all__ = [
    "BufferEndTarget",
    "CompletionGate",
    "GateAlreadyResolved",
    "GateOutcome",
    "MarkerTarget",
    "ProcessHandle",
    "ProcessResult",
    "ProcessRunner",
    "ProcessState",
    "StreamDeliverer",
    "SubprocessFailure",
    "deliver_chunk",
    "describe_returncode",
]
