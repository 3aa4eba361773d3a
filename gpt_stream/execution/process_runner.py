"""Supervision of the out-of-process model invocation.

A :class:`ProcessHandle` moves through ``CREATED -> RUNNING -> COMPLETED|FAILED
-> CLEANED``. Stdout is decoded incrementally and pushed to the delivery sink in
arrival order; the terminal state is only entered after stdout hit EOF, so every
chunk is applied before success or failure is reported.
"""
from __future__ import annotations

import asyncio
import codecs
import contextlib
import signal
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from gpt_stream.core.notifications import LoggingNotifier, Notifier
from gpt_stream.core.utils.config import Settings
from gpt_stream.core.utils.constants import STDERR_TAIL_CHARS, STDOUT_READ_SIZE
from gpt_stream.core.utils.logger import get_logger

LOGGER = get_logger(__name__)

Sink = Callable[[str], None]
ProgressCallback = Callable[["ProcessHandle"], None]
ResultCallback = Callable[["ProcessResult"], None]


class ProcessState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CLEANED = "cleaned"


@dataclass(frozen=True)
class ProcessResult:
    """Terminal report of one model invocation."""

    outcome: ProcessState
    returncode: Optional[int]
    status: str
    output: str
    stderr: str
    prompt_path: Path

    @property
    def succeeded(self) -> bool:
        return self.outcome is ProcessState.COMPLETED

    def raise_for_status(self) -> "ProcessResult":
        if not self.succeeded:
            raise SubprocessFailure(self)
        return self


class SubprocessFailure(RuntimeError):
    """Raised on demand for a failed invocation (non-zero exit, signal, spawn error)."""

    def __init__(self, result: ProcessResult) -> None:
        super().__init__(f"Model process {result.status}")
        self.result = result


def describe_returncode(returncode: Optional[int]) -> str:
    if returncode is None:
        return "did not start"
    if returncode == 0:
        return "finished"
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        return f"killed by signal {name}"
    return f"exited abnormally with code {returncode}"


def _redact(argv: Sequence[str], secret: str) -> str:
    return " ".join("***" if secret and part == secret else part for part in argv)


class ProcessHandle:
    """One live model subprocess, owned by the runner that created it."""

    def __init__(
        self,
        argv: Sequence[str],
        prompt_path: Path,
        sink: Sink,
        *,
        notifier: Notifier,
        liveness_interval: float,
        on_progress: Optional[ProgressCallback] = None,
        label: str = "GPT",
        secret: str = "",
    ) -> None:
        self.argv = list(argv)
        self.prompt_path = prompt_path
        self.sink = sink
        self.notifier = notifier
        self.liveness_interval = liveness_interval
        self.on_progress = on_progress
        self.label = label
        self.state = ProcessState.CREATED
        self.outcome: Optional[ProcessState] = None
        self.ticks = 0
        self.timer_cancellations = 0
        self._secret = secret
        self._loop = asyncio.get_running_loop()
        self._result: asyncio.Future[ProcessResult] = self._loop.create_future()
        self._done_callbacks: List[ResultCallback] = []
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pump_task: Optional[asyncio.Task[None]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_cancelled = False
        self._output: List[str] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def done(self) -> bool:
        return self._result.done()

    @property
    def output(self) -> str:
        return "".join(self._output)

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def wait(self) -> ProcessResult:
        """Resolve once the handle reached its terminal state."""
        return await asyncio.shield(self._result)

    def add_done_callback(self, callback: ResultCallback) -> None:
        """Run ``callback`` with the result at finalization (immediately if already done)."""
        if self._result.done():
            callback(self._result.result())
            return
        self._done_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _spawn(self) -> None:
        LOGGER.debug("Spawning model process: %s", _redact(self.argv, self._secret))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            LOGGER.error("Failed to start model process %s: %s", self.argv[0], exc)
            self._finalize(None, f"failed to start: {exc}", "", failed=True)
            return
        self.state = ProcessState.RUNNING
        LOGGER.info("Model process started (pid=%s)", self._process.pid)
        self._schedule_tick()
        self._pump_task = self._loop.create_task(self._pump())

    async def _pump(self) -> None:
        process = self._process
        assert process is not None and process.stdout is not None and process.stderr is not None
        stderr_task = self._loop.create_task(process.stderr.read())
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        delivery_error: Optional[str] = None
        try:
            while True:
                data = await process.stdout.read(STDOUT_READ_SIZE)
                if not data:
                    break
                self._deliver(decoder.decode(data))
            self._deliver(decoder.decode(b"", final=True))
        except Exception as exc:
            LOGGER.exception("Delivery failed for model process pid=%s", process.pid)
            delivery_error = f"delivery failed: {exc}"
            with contextlib.suppress(ProcessLookupError):
                process.kill()
        returncode = await process.wait()
        stderr = (await stderr_task).decode("utf-8", errors="replace")
        if delivery_error is not None:
            self._finalize(returncode, delivery_error, stderr, failed=True)
        else:
            self._finalize(returncode, describe_returncode(returncode), stderr, failed=returncode != 0)

    def _deliver(self, text: str) -> None:
        if not text:
            return
        self._output.append(text)
        self.sink(text)

    def _finalize(self, returncode: Optional[int], status: str, stderr: str, *, failed: bool) -> None:
        if self._result.done():
            return
        self._cancel_liveness_timer()
        if failed:
            self.state = ProcessState.FAILED
            LOGGER.error("Model process %s; prompt kept at %s", status, self.prompt_path)
            if stderr.strip():
                LOGGER.warning("Model process stderr: %s", stderr.strip()[-STDERR_TAIL_CHARS:])
            self.notifier.notify(f"{self.label} process failed: {status}")
        else:
            self.state = ProcessState.COMPLETED
            self._remove_prompt_file()
            self.notifier.notify(f"{self.label} process completed.")
        self.outcome = self.state
        result = ProcessResult(
            outcome=self.state,
            returncode=returncode,
            status=status,
            output=self.output,
            stderr=stderr,
            prompt_path=self.prompt_path,
        )
        self.state = ProcessState.CLEANED
        callbacks, self._done_callbacks = self._done_callbacks, []
        for callback in callbacks:
            try:
                callback(result)
            except Exception:
                LOGGER.exception("Process completion callback failed")
        self._result.set_result(result)

    def _remove_prompt_file(self) -> None:
        try:
            self.prompt_path.unlink(missing_ok=True)
        except OSError as exc:
            LOGGER.warning("Could not delete prompt file %s: %s", self.prompt_path, exc)

    # ------------------------------------------------------------------
    # Liveness timer
    # ------------------------------------------------------------------

    def _schedule_tick(self) -> None:
        if self._timer_cancelled:
            return
        self._timer = self._loop.call_later(self.liveness_interval, self._tick)

    def _tick(self) -> None:
        self._timer = None
        if self._timer_cancelled or not self.is_alive():
            return
        self.ticks += 1
        if self.on_progress is not None:
            try:
                self.on_progress(self)
            except Exception:
                LOGGER.exception("Progress callback failed")
        self.notifier.notify(f"{self.label} process running...")
        self._schedule_tick()

    def _cancel_liveness_timer(self) -> bool:
        """Cancel the liveness timer; only the first call has any effect."""
        if self._timer_cancelled:
            return False
        self._timer_cancelled = True
        self.timer_cancellations += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return True

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, state={self.state.value})"


class ProcessRunner:
    """Launch model subprocesses with the prompt passed through a temporary file."""

    def __init__(
        self,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        *,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self.settings = settings
        self.notifier = notifier or LoggingNotifier()
        self.temp_dir = temp_dir
        self.active: List[ProcessHandle] = []

    async def start(
        self,
        prompt: str,
        sink: Sink,
        *,
        on_progress: Optional[ProgressCallback] = None,
        label: str = "GPT",
    ) -> ProcessHandle:
        secret = self.settings.api_key()
        prompt_path = self._write_prompt(prompt)
        try:
            argv = self.settings.backend_arguments(prompt_path, api_key=secret)
        except Exception:
            prompt_path.unlink(missing_ok=True)
            raise
        handle = ProcessHandle(
            argv,
            prompt_path,
            sink,
            notifier=self.notifier,
            liveness_interval=self.settings.liveness_interval,
            on_progress=on_progress,
            label=label,
            secret=secret,
        )
        self.active.append(handle)
        handle.add_done_callback(lambda _result: self._forget(handle))
        await handle._spawn()
        return handle

    async def run(self, prompt: str, sink: Optional[Sink] = None, *, label: str = "GPT") -> ProcessResult:
        """Start a process and wait for its terminal result."""
        handle = await self.start(prompt, sink or (lambda _text: None), label=label)
        return await handle.wait()

    def _forget(self, handle: ProcessHandle) -> None:
        if handle in self.active:
            self.active.remove(handle)

    def _write_prompt(self, prompt: str) -> Path:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            prefix="gpt-prompt-",
            suffix=".txt",
            dir=self.temp_dir,
            delete=False,
        ) as handle:
            handle.write(prompt)
        return Path(handle.name)


__all__ = [
    "ProcessHandle",
    "ProcessResult",
    "ProcessRunner",
    "ProcessState",
    "SubprocessFailure",
    "describe_returncode",
]
