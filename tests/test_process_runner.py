"""Tests for model subprocess supervision using a scripted stand-in backend."""
from __future__ import annotations

import asyncio

import pytest

from conftest import CHUNKS_SCRIPT, ECHO_PROMPT_SCRIPT, FAILING_SCRIPT
from gpt_stream.core.notifications import RecordingNotifier
from gpt_stream.execution.process_runner import (
    ProcessRunner,
    ProcessState,
    SubprocessFailure,
    describe_returncode,
)

ARGV_SCRIPT = """
import sys
sys.stdout.write("|".join(sys.argv[2:]))
"""

SLOW_SCRIPT = """
import sys, time
time.sleep(0.3)
sys.stdout.write("done")
"""

SPLIT_UTF8_SCRIPT = """
import sys
for byte in "h\\u00e9llo \\u2713".encode("utf-8"):
    sys.stdout.buffer.write(bytes([byte]))
    sys.stdout.buffer.flush()
"""


def _run(settings, prompt="prompt text", sink=None, notifier=None, **kwargs):
    received = []

    async def scenario():
        runner = ProcessRunner(settings, notifier or RecordingNotifier(), temp_dir=settings.state_file.parent)
        handle = await runner.start(prompt, sink or received.append, **kwargs)
        result = await handle.wait()
        return runner, handle, result

    runner, handle, result = asyncio.run(scenario())
    return runner, handle, result, received


def test_successful_run_delivers_chunks_in_order(make_settings):
    notifier = RecordingNotifier()
    runner, handle, result, received = _run(make_settings(CHUNKS_SCRIPT), notifier=notifier)

    assert result.succeeded
    assert result.returncode == 0
    assert result.status == "finished"
    assert "".join(received) == "Hello, world"
    assert result.output == "Hello, world"
    assert handle.outcome is ProcessState.COMPLETED
    assert handle.state is ProcessState.CLEANED
    assert notifier.messages[-1] == "GPT process completed."
    assert runner.active == []


def test_prompt_file_is_passed_and_removed_on_success(make_settings):
    _, _, result, received = _run(make_settings(ECHO_PROMPT_SCRIPT), prompt="Explain ünïcode")

    assert "".join(received) == "Explain ünïcode"
    assert result.prompt_path.name.startswith("gpt-prompt-")
    assert not result.prompt_path.exists()


def test_backend_receives_positional_arguments(make_settings):
    settings = make_settings(ARGV_SCRIPT, model="gpt-test", max_tokens=123, temperature=0.5)
    _, _, result, _ = _run(settings)

    assert result.output == "test-key|gpt-test|123|0.5|openai"


def test_failure_keeps_prompt_and_reports_status(make_settings):
    notifier = RecordingNotifier()
    _, handle, result, received = _run(make_settings(FAILING_SCRIPT), notifier=notifier)

    assert not result.succeeded
    assert handle.outcome is ProcessState.FAILED
    assert result.returncode == 1
    assert result.status == "exited abnormally with code 1"
    assert "boom" in result.stderr
    assert received == ["partial"]
    assert result.prompt_path.exists()
    assert notifier.messages[-1] == "GPT process failed: exited abnormally with code 1"
    with pytest.raises(SubprocessFailure):
        result.raise_for_status()
    result.prompt_path.unlink()


def test_liveness_timer_ticks_and_is_cancelled_once(make_settings):
    notifier = RecordingNotifier()
    progress = []

    async def scenario():
        runner = ProcessRunner(make_settings(SLOW_SCRIPT), notifier)
        handle = await runner.start("prompt", lambda _text: None, on_progress=progress.append)
        await handle.wait()
        ticks = handle.ticks
        await asyncio.sleep(0.05)
        return handle, ticks

    handle, ticks_at_finish = asyncio.run(scenario())

    assert ticks_at_finish >= 1
    assert handle.ticks == ticks_at_finish
    assert handle.timer_cancellations == 1
    assert progress and progress[0] is handle
    assert "GPT process running..." in notifier.messages
    assert notifier.messages[-1] == "GPT process completed."


def test_failed_process_cancels_timer_once(make_settings):
    _, handle, _, _ = _run(make_settings(FAILING_SCRIPT))
    assert handle.timer_cancellations == 1
    handle._cancel_liveness_timer()
    assert handle.timer_cancellations == 1
    handle.prompt_path.unlink()


def test_multibyte_output_split_across_reads(make_settings):
    _, _, result, received = _run(make_settings(SPLIT_UTF8_SCRIPT))
    assert "".join(received) == "héllo ✓"
    assert "�" not in result.output


def test_spawn_failure_is_reported(make_settings):
    settings = make_settings(backend_command=("/nonexistent/gpt-backend",))
    notifier = RecordingNotifier()
    _, handle, result, received = _run(settings, notifier=notifier)

    assert handle.outcome is ProcessState.FAILED
    assert result.returncode is None
    assert result.status.startswith("failed to start")
    assert received == []
    assert result.prompt_path.exists()
    assert notifier.messages[-1].startswith("GPT process failed: failed to start")
    result.prompt_path.unlink()


def test_sink_error_fails_the_invocation(make_settings):
    def broken_sink(_text):
        raise RuntimeError("target vanished")

    _, handle, result, _ = _run(make_settings(CHUNKS_SCRIPT), sink=broken_sink)

    assert handle.outcome is ProcessState.FAILED
    assert result.status == "delivery failed: target vanished"
    result.prompt_path.unlink()


def test_done_callback_runs_after_completion(make_settings):
    seen = []

    async def scenario():
        runner = ProcessRunner(make_settings(CHUNKS_SCRIPT))
        handle = await runner.start("prompt", lambda _text: None)
        handle.add_done_callback(lambda result: seen.append(("early", result.output)))
        await handle.wait()
        handle.add_done_callback(lambda result: seen.append(("late", result.output)))

    asyncio.run(scenario())

    assert seen == [("early", "Hello, world"), ("late", "Hello, world")]


def test_run_collects_output_without_sink(make_settings):
    async def scenario():
        return await ProcessRunner(make_settings(CHUNKS_SCRIPT)).run("prompt", label="Title")

    result = asyncio.run(scenario())
    assert result.output == "Hello, world"


@pytest.mark.parametrize(
    "returncode, expected",
    [
        (0, "finished"),
        (2, "exited abnormally with code 2"),
        (-9, "killed by signal SIGKILL"),
        (None, "did not start"),
    ],
)
def test_describe_returncode(returncode, expected):
    assert describe_returncode(returncode) == expected


def test_invalid_provider_leaves_no_prompt_file(make_settings, tmp_path):
    prompts = tmp_path / "prompts"
    prompts.mkdir()
    runner = ProcessRunner(make_settings(provider="bogus"), RecordingNotifier(), temp_dir=prompts)

    with pytest.raises(ValueError, match="Unsupported provider"):
        asyncio.run(runner.start("prompt", lambda _text: None))

    assert list(prompts.iterdir()) == []


def test_argument_failure_removes_written_prompt(make_settings, tmp_path, monkeypatch):
    prompts = tmp_path / "prompts"
    prompts.mkdir()
    settings = make_settings()
    seen = []

    def broken_arguments(prompt_path, api_key=None):
        seen.append(prompt_path)
        raise ValueError("bad backend command")

    monkeypatch.setattr(settings, "backend_arguments", broken_arguments)
    runner = ProcessRunner(settings, RecordingNotifier(), temp_dir=prompts)

    with pytest.raises(ValueError, match="bad backend command"):
        asyncio.run(runner.start("prompt", lambda _text: None))

    assert seen and not seen[0].exists()
    assert list(prompts.iterdir()) == []
