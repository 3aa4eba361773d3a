import asyncio

import pytest

from gpt_stream.core.notifications import RecordingNotifier
from gpt_stream.execution.completion_gate import CompletionGate, GateAlreadyResolved, GateOutcome
from gpt_stream.execution.delivery import MarkerTarget, StreamDeliverer
from gpt_stream.text.buffer import TextBuffer

SOURCE = "def area(r):\n    return \n"
POINT = len("def area(r):\n    return ")


def _gate(buffer, **kwargs):
    target = MarkerTarget(buffer, POINT)
    deliverer = StreamDeliverer(target)
    gate = CompletionGate(target, deliverer, **kwargs)
    return gate, deliverer


def test_reject_restores_original_text():
    buffer = TextBuffer("shapes.py", SOURCE)
    notifier = RecordingNotifier()
    outcomes = []
    gate, deliverer = _gate(buffer, notifier=notifier, on_resolved=outcomes.append)

    deliverer.on_chunk("3.14159 * ")
    deliverer.on_chunk("r ** 2")
    assert gate.pending_text == "3.14159 * r ** 2"
    assert len(buffer.overlays) == 1

    assert gate.resolve("q") is GateOutcome.REJECTED
    assert buffer.text == SOURCE
    assert buffer.overlays == []
    assert notifier.messages == ["Completion canceled."]
    assert outcomes == [GateOutcome.REJECTED]


def test_accept_keeps_text_and_drops_late_chunks():
    buffer = TextBuffer("shapes.py", SOURCE)
    gate, deliverer = _gate(buffer)

    deliverer.on_chunk("r * r")
    assert gate.resolve("\t") is GateOutcome.ACCEPTED
    deliverer.on_chunk(" + 1")

    assert buffer.text == "def area(r):\n    return r * r\n"
    assert deliverer.dropped_chars == 4
    assert buffer.overlays == []


def test_reject_after_edits_elsewhere_only_removes_completion():
    buffer = TextBuffer("shapes.py", SOURCE)
    gate, deliverer = _gate(buffer)

    deliverer.on_chunk("r * r")
    buffer.insert(0, "import math\n")
    gate.reject()

    assert buffer.text == "import math\n" + SOURCE


def test_gate_resolves_only_once():
    gate, _ = _gate(TextBuffer("shapes.py", SOURCE))
    gate.accept()
    with pytest.raises(GateAlreadyResolved):
        gate.reject()


def test_custom_accept_key_and_async_wait():
    buffer = TextBuffer("shapes.py", SOURCE)
    gate, deliverer = _gate(buffer, accept_key="y")
    deliverer.on_chunk("r")

    async def read_key():
        return "y"

    assert asyncio.run(gate.wait(read_key)) is GateOutcome.ACCEPTED
    assert gate.resolved
    assert "return r\n" in buffer.text
