"""Command line interface for the streaming client."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence, Tuple

import click

from gpt_stream.context.resolver import ContextUnavailable
from gpt_stream.context.selection import ContextSelection
from gpt_stream.core.utils.config import Settings, load_settings
from gpt_stream.core.utils.logger import configure_logging, get_logger
from gpt_stream.core.utils.state import JsonStateStore
from gpt_stream.engine.orchestrator import ChatOrchestrator
from gpt_stream.execution.completion_gate import GateOutcome
from gpt_stream.execution.process_runner import SubprocessFailure
from gpt_stream.session.history import CommandHistory
from gpt_stream.session.models import SessionMode
from gpt_stream.text.buffer import TextBuffer, TextChange

LOGGER = get_logger(__name__)

PROGRESS_SUFFIX = "process running..."


class ClickNotifier:
    """Echo notifications on stderr; periodic progress only when verbose."""

    def __init__(self, show_progress: bool = False) -> None:
        self.show_progress = show_progress

    def notify(self, message: str) -> None:
        if message.endswith(PROGRESS_SUFFIX) and not self.show_progress:
            return
        click.echo(message, err=True)


class ClickPicker:
    """Prompt for one candidate at a time on the terminal."""

    def pick_one(self, prompt: str, candidates: Sequence[str]) -> Optional[str]:
        value = click.prompt(prompt, default="", show_default=False)
        value = value.strip()
        if value and value not in candidates:
            click.echo(f"Unknown file: {value}", err=True)
        return value or None


def _echo_inserts(change: TextChange) -> None:
    if change.inserted and not change.removed:
        click.echo(change.inserted, nl=False)


def _build_orchestrator(ctx: click.Context) -> ChatOrchestrator:
    settings: Settings = ctx.obj["settings"]
    state: JsonStateStore = ctx.obj["state"]
    return ChatOrchestrator(
        settings,
        selection=ContextSelection(state.context_selection()),
        history=CommandHistory(state.command_history(), max_entries=settings.history_max_entries),
        notifier=ClickNotifier(show_progress=ctx.obj["verbose"]),
    )


def _persist(ctx: click.Context, orchestrator: ChatOrchestrator) -> None:
    state: JsonStateStore = ctx.obj["state"]
    settings: Settings = ctx.obj["settings"]
    state.persist(
        orchestrator.selection.paths,
        orchestrator.history.entries,
        limit=settings.history_max_entries,
    )


def _raise_for_failure(result) -> None:
    try:
        result.raise_for_status()
    except SubprocessFailure as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config file.")
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """Stream language-model answers into text buffers."""
    try:
        settings = load_settings(config_path)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings.log_level, structured=settings.structured_logging)
    ctx.obj = {
        "settings": settings,
        "state": JsonStateStore(settings.state_file),
        "verbose": verbose,
    }


@cli.command()
@click.argument("instruction", nargs=-1, required=True)
@click.option(
    "--file",
    "input_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Attach a file as input; repeat to attach several, each labelled with its path.",
)
@click.option("--context", "context_files", multiple=True, help="Project file to attach for this call only.")
@click.option("--no-context", is_flag=True, help="Do not attach the selected project files.")
@click.option(
    "--transcript",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Continue the conversation saved in this file and append the new exchange to it.",
)
@click.option("--title", "want_title", is_flag=True, help="Generate a title once the answer is complete.")
@click.pass_context
def chat(
    ctx: click.Context,
    instruction: Tuple[str, ...],
    input_files: Tuple[Path, ...],
    context_files: Tuple[str, ...],
    no_context: bool,
    transcript: Optional[Path],
    want_title: bool,
) -> None:
    """Ask INSTRUCTION and stream the answer to stdout."""
    text = " ".join(instruction).strip()
    if transcript is not None and input_files:
        raise click.UsageError("--file cannot be combined with --transcript")
    orchestrator = _build_orchestrator(ctx)
    inputs = [TextBuffer(str(path), path.read_text(encoding="utf-8")) for path in input_files]

    async def run() -> None:
        files = list(context_files) if context_files else None
        if transcript is not None and transcript.is_file():
            buffer = orchestrator.buffers.create(transcript.name, transcript.read_text(encoding="utf-8"))
            session = orchestrator.sessions.create(SessionMode.CHAT, text, buffer=buffer)
            await orchestrator.follow_up(session, text, context_files=files, use_context=not no_context)
        else:
            session = await orchestrator.chat(
                text,
                input_buffers=inputs,
                context_files=files,
                use_context=not no_context,
            )
        click.echo(session.target.text, nl=False)
        session.target.add_change_listener(_echo_inserts)
        result = await orchestrator.wait(session)
        click.echo()
        if transcript is not None:
            transcript.write_text(session.target.text, encoding="utf-8")
        _raise_for_failure(result)
        if want_title:
            title = await orchestrator.generate_title(session)
            if title:
                click.echo(f"Title: {title}", err=True)

    try:
        asyncio.run(run())
    finally:
        _persist(ctx, orchestrator)


def _offset(value: Optional[int], text: str, default: int) -> int:
    if value is None:
        return default
    if value < 0 or value > len(text):
        raise click.BadParameter(f"offset {value} is outside 0..{len(text)}")
    return value


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("instruction", nargs=-1, required=True)
@click.option("--start", type=int, default=None, help="Region start offset (default: beginning of file).")
@click.option("--end", type=int, default=None, help="Region end offset (default: end of file).")
@click.option("--no-context", is_flag=True, help="Do not attach the selected project files.")
@click.option("--write", is_flag=True, help="Write the transformed text back to PATH.")
@click.pass_context
def transform(
    ctx: click.Context,
    path: Path,
    instruction: Tuple[str, ...],
    start: Optional[int],
    end: Optional[int],
    no_context: bool,
    write: bool,
) -> None:
    """Rewrite a region of PATH according to INSTRUCTION."""
    text = " ".join(instruction).strip()
    original = path.read_text(encoding="utf-8")
    region_start = _offset(start, original, 0)
    region_end = _offset(end, original, len(original))
    if region_end < region_start:
        raise click.BadParameter("--end must not precede --start")
    orchestrator = _build_orchestrator(ctx)
    buffer = TextBuffer(path.name, original)

    async def run() -> None:
        buffer.add_change_listener(_echo_inserts)
        session = await orchestrator.transform_region(
            buffer, region_start, region_end, text, use_context=not no_context
        )
        result = await orchestrator.wait(session)
        click.echo()
        _raise_for_failure(result)

    try:
        asyncio.run(run())
    finally:
        _persist(ctx, orchestrator)
    if write:
        path.write_text(buffer.text, encoding="utf-8")
        click.echo(f"Wrote {path}", err=True)


async def _read_key() -> str:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, click.getchar)


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("position", type=int, required=False)
@click.option("--no-context", is_flag=True, help="Do not attach the selected project files.")
@click.option("--write", is_flag=True, help="Write the accepted completion back to PATH.")
@click.pass_context
def complete(
    ctx: click.Context,
    path: Path,
    position: Optional[int],
    no_context: bool,
    write: bool,
) -> None:
    """Complete PATH at offset POSITION (default: end of file)."""
    original = path.read_text(encoding="utf-8")
    point = _offset(position, original, len(original))
    orchestrator = _build_orchestrator(ctx)
    buffer = TextBuffer(path.name, original)
    settings: Settings = ctx.obj["settings"]

    async def run() -> GateOutcome:
        gate = await orchestrator.complete_at_point(buffer, point, use_context=not no_context)
        session = orchestrator.sessions.find_by_buffer(buffer)
        if session is not None:
            _raise_for_failure(await orchestrator.wait(session))
        click.echo(gate.pending_text)
        key_name = "TAB" if settings.completion_accept_key == "\t" else repr(settings.completion_accept_key)
        click.echo(f"Press {key_name} to accept, any other key to reject.", err=True)
        return await gate.wait(_read_key)

    try:
        outcome = asyncio.run(run())
    finally:
        _persist(ctx, orchestrator)
    click.echo(f"Completion {outcome.value}.", err=True)
    if write and outcome is GateOutcome.ACCEPTED:
        path.write_text(buffer.text, encoding="utf-8")
        click.echo(f"Wrote {path}", err=True)


@cli.group()
def context() -> None:
    """Manage the project files attached to every request."""


@context.command("select")
@click.pass_context
def context_select(ctx: click.Context) -> None:
    """Pick project files one at a time; an empty answer finishes."""
    orchestrator = _build_orchestrator(ctx)
    try:
        candidates = orchestrator.project_provider().list_project_files()
    except ContextUnavailable as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{len(candidates)} project file(s) available.", err=True)
    chosen = orchestrator.select_context_files(ClickPicker())
    for path in chosen:
        click.echo(path)
    _persist(ctx, orchestrator)


@context.command("show")
@click.pass_context
def context_show(ctx: click.Context) -> None:
    """List the currently selected context files."""
    paths = ctx.obj["state"].context_selection()
    if not paths:
        click.echo("No context files selected.", err=True)
        return
    for path in paths:
        click.echo(path)


@context.command("clear")
@click.pass_context
def context_clear(ctx: click.Context) -> None:
    """Forget the selected context files."""
    orchestrator = _build_orchestrator(ctx)
    orchestrator.clear_context()
    _persist(ctx, orchestrator)


@cli.command()
@click.option("--prefix", default="", help="Only show instructions starting with this text.")
@click.pass_context
def history(ctx: click.Context, prefix: str) -> None:
    """Show previous instructions, most recent first."""
    settings: Settings = ctx.obj["settings"]
    entries = CommandHistory(ctx.obj["state"].command_history(), max_entries=settings.history_max_entries)
    for entry in entries.candidates(prefix):
        click.echo(entry)


def main() -> None:
    cli()


__all__ = ["cli", "main", "ClickNotifier", "ClickPicker"]
