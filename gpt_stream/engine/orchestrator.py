"""User-facing flows: chat, follow-up, region transform, point completion, titles."""
from __future__ import annotations

from typing import Callable, List, Optional, Sequence

from gpt_stream.context.resolver import (
    ContextResolver,
    ContextUnavailable,
    FilesystemProjectProvider,
    Picker,
    ProjectFileProvider,
    resolve_ad_hoc_selection,
)
from gpt_stream.context.selection import ContextSelection
from gpt_stream.core.notifications import LoggingNotifier, Notifier
from gpt_stream.core.utils.config import Settings
from gpt_stream.core.utils.logger import bind_session, get_logger, session_fields
from gpt_stream.execution.completion_gate import CompletionGate, GateOutcome
from gpt_stream.execution.delivery import BufferEndTarget, DeliveryTarget, MarkerTarget, StreamDeliverer
from gpt_stream.execution.process_runner import ProcessHandle, ProcessResult, ProcessRunner
from gpt_stream.session.history import CommandHistory
from gpt_stream.session.manager import SessionBusy, SessionStore, clean_generated_title
from gpt_stream.session.models import Session, SessionMode, SessionStatus
from gpt_stream.session.prompt_builder import buffers_input, build_prompt, user_turn
from gpt_stream.text.buffer import TextBuffer
from gpt_stream.text.markdown import extract_code_blocks

LOGGER = get_logger(__name__)

COMPLETION_INSTRUCTION = "Complete at point"


class ChatOrchestrator:
    """Entry point tying prompts, context, subprocesses and buffers together."""

    def __init__(
        self,
        settings: Settings,
        *,
        runner: Optional[ProcessRunner] = None,
        sessions: Optional[SessionStore] = None,
        selection: Optional[ContextSelection] = None,
        provider: Optional[ProjectFileProvider] = None,
        history: Optional[CommandHistory] = None,
        notifier: Optional[Notifier] = None,
        on_refresh: Optional[Callable[[Session], None]] = None,
    ) -> None:
        self.settings = settings
        self.notifier = notifier or LoggingNotifier()
        self.runner = runner or ProcessRunner(settings, self.notifier)
        self.sessions = sessions or SessionStore(
            use_named_buffers=settings.use_named_buffers,
            name_length=settings.buffer_name_length,
        )
        self.selection = selection if selection is not None else ContextSelection()
        self.history = history or CommandHistory(max_entries=settings.history_max_entries)
        self.on_refresh = on_refresh
        self._provider = provider

    @property
    def buffers(self):
        return self.sessions.buffers

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def project_provider(self) -> ProjectFileProvider:
        if self._provider is None:
            self._provider = FilesystemProjectProvider.discover()
        return self._provider

    def select_context_files(self, picker: Picker, *, persist: bool = True) -> List[str]:
        """Pick project files interactively; raises ContextUnavailable without a project."""
        candidates = self.project_provider().list_project_files()
        chosen = resolve_ad_hoc_selection(picker, candidates)
        if persist:
            self.selection.select(chosen)
            self.notifier.notify(f"Selected {len(chosen)} context file(s).")
        return chosen

    def clear_context(self) -> None:
        self.selection.clear()
        self.notifier.notify("Context selection cleared.")

    def context_block(self, paths: Optional[Sequence[str]] = None) -> Optional[str]:
        """Format ``paths`` (or the persistent selection); None when there is nothing to attach."""
        selected = list(paths) if paths is not None else self.selection.paths
        if not selected:
            return None
        try:
            provider = self.project_provider()
        except ContextUnavailable as exc:
            LOGGER.warning("Continuing without project context: %s", exc)
            self.notifier.notify(f"Project context unavailable: {exc}")
            return None
        block = ContextResolver(provider, self.notifier).resolve_selected_files(selected)
        return block or None

    # ------------------------------------------------------------------
    # Flows
    # ------------------------------------------------------------------

    async def chat(
        self,
        instruction: str,
        *,
        input_text: Optional[str] = None,
        input_buffers: Optional[Sequence[TextBuffer]] = None,
        context_files: Optional[Sequence[str]] = None,
        use_context: bool = True,
    ) -> Session:
        """Start a chat in a new output buffer and return once the model is streaming.

        The input block is either ``input_text`` (a region or one buffer) or
        ``input_buffers``, which are labelled by name and attached in order.
        """
        if input_buffers:
            if input_text is not None:
                raise ValueError("Pass either input_text or input_buffers, not both")
            input_text = buffers_input(input_buffers)
        self.history.append(instruction)
        session = self.sessions.create(SessionMode.CHAT, instruction)
        bind_session(session)
        context = self.context_block(context_files) if use_context else None
        prompt = build_prompt(instruction, context, input_text, SessionMode.CHAT)
        session.target.append(user_turn(instruction))
        await self._launch(session, prompt, BufferEndTarget(session.target))
        return session

    async def follow_up(
        self,
        session: Session,
        instruction: str,
        *,
        context_files: Optional[Sequence[str]] = None,
        use_context: bool = True,
    ) -> Session:
        """Continue a conversation in its own buffer."""
        if session.running:
            raise SessionBusy(f"Session {session.id} is still running")
        self.history.append(instruction)
        transcript = session.target.text
        session.mode = SessionMode.FOLLOW_UP
        bind_session(session)
        context = self.context_block(context_files) if use_context else None
        prompt = build_prompt(instruction, context, None, SessionMode.FOLLOW_UP, transcript=transcript)
        separator = "\n\n" if transcript.strip() else ""
        session.target.append(separator + user_turn(instruction))
        await self._launch(session, prompt, BufferEndTarget(session.target))
        return session

    async def transform_region(
        self,
        buffer: TextBuffer,
        start: int,
        end: int,
        instruction: str,
        *,
        use_context: bool = True,
    ) -> Session:
        """Replace ``[start, end)`` with model output streamed in place."""
        self.history.append(instruction)
        region = buffer.read_range(start, end)
        before = buffer.read_range(0, start)
        after = buffer.read_range(end, len(buffer))
        session = self.sessions.create(SessionMode.REGION_TRANSFORM, instruction, buffer=buffer)
        bind_session(session)
        context = self.context_block() if use_context else None
        prompt = build_prompt(
            instruction,
            context,
            region,
            SessionMode.REGION_TRANSFORM,
            before=before,
            after=after,
        )
        buffer.delete(start, end)
        target = MarkerTarget(buffer, start)
        deliverer = await self._launch(session, prompt, target)

        def restore(result: ProcessResult) -> None:
            if not result.succeeded and not deliverer.delivered and not buffer.killed:
                buffer.insert_at(target.insertion, region)
                LOGGER.info("Restored original region after failed transform", extra=session_fields(session))
            target.release()

        self._require_handle(session).add_done_callback(restore)
        return session

    async def complete_at_point(
        self,
        buffer: TextBuffer,
        position: int,
        *,
        use_context: bool = True,
    ) -> CompletionGate:
        """Stream a completion at ``position``; the returned gate decides its fate."""
        before = buffer.read_range(0, position)
        after = buffer.read_range(position, len(buffer))
        session = self.sessions.create(SessionMode.POINT_COMPLETION, COMPLETION_INSTRUCTION, buffer=buffer)
        bind_session(session)
        context = self.context_block() if use_context else None
        prompt = build_prompt(
            "",
            context,
            None,
            SessionMode.POINT_COMPLETION,
            before=before,
            after=after,
        )
        target = MarkerTarget(buffer, position)
        deliverer = await self._launch(session, prompt, target)
        gate = CompletionGate(
            target,
            deliverer,
            accept_key=self.settings.completion_accept_key,
            notifier=self.notifier,
            on_resolved=lambda outcome: self._gate_resolved(session, outcome),
        )
        session.metadata["gate"] = gate
        return gate

    async def generate_title(self, session: Session) -> Optional[str]:
        """Ask the model for a title and rename the session; None when it fails."""
        prompt = build_prompt(
            "",
            None,
            None,
            SessionMode.TITLE_GENERATION,
            transcript=session.transcript(),
            title_max_length=self.settings.title_max_length,
        )
        result = await self.runner.run(prompt, label="Title")
        if not result.succeeded:
            LOGGER.warning("Title generation %s", result.status, extra=session_fields(session))
            return None
        title = clean_generated_title(result.output)
        if not title:
            LOGGER.warning("Title generation returned nothing", extra=session_fields(session))
            return None
        return self.sessions.rename(session, title)

    async def wait(self, session: Session) -> ProcessResult:
        return await self._require_handle(session).wait()

    def code_block(self, session: Session, index: int = -1) -> Optional[str]:
        """Return one fenced code block from the session buffer (last by default)."""
        blocks = extract_code_blocks(session.target.text)
        try:
            return blocks[index].code
        except IndexError:
            return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _launch(self, session: Session, prompt: str, target: DeliveryTarget) -> StreamDeliverer:
        deliverer = StreamDeliverer(target)
        self.sessions.set_status(session, SessionStatus.RUNNING)
        handle = await self.runner.start(
            prompt,
            deliverer,
            on_progress=lambda _handle: self._refresh(session),
        )
        session.handle = handle
        handle.add_done_callback(lambda result: self._finished(session, result))
        return deliverer

    def _finished(self, session: Session, result: ProcessResult) -> None:
        status = SessionStatus.COMPLETED if result.succeeded else SessionStatus.FAILED
        self.sessions.set_status(session, status)
        LOGGER.info("Model process %s", result.status, extra=session_fields(session))
        self._refresh(session)

    def _gate_resolved(self, session: Session, outcome: GateOutcome) -> None:
        if outcome is GateOutcome.REJECTED:
            self.sessions.set_status(session, SessionStatus.CANCELED)

    def _refresh(self, session: Session) -> None:
        if self.on_refresh is not None:
            self.on_refresh(session)

    @staticmethod
    def _require_handle(session: Session) -> ProcessHandle:
        if session.handle is None:
            raise RuntimeError(f"Session {session.id} has no model process")
        return session.handle


__all__ = ["ChatOrchestrator", "COMPLETION_INSTRUCTION"]
