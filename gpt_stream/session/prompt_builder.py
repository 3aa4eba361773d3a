"""Helpers for constructing the prompt text sent to the model subprocess.

Every builder is a pure function of its arguments. Chat, follow-up and title
prompts use the ``User: ... Assistant:`` framing and end ready for the model to
continue as the assistant; region and point prompts use their own framing.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from gpt_stream.core.utils.constants import DEFAULT_TITLE_MAX_LENGTH
from gpt_stream.text.buffer import TextBuffer
from gpt_stream.text.markdown import fence

from .models import SessionMode

USER_MARKER = "User:"
ASSISTANT_MARKER = "Assistant: "
REGION_MARKER = "<region>"
CURSOR_MARKER = "<cursor>"
BUFFER_LABEL = "Buffer: {name}"

REGION_TRANSFORM_INSTRUCTIONS = (
    "Apply the instruction above to the text between the <region> markers. "
    "Only output the replacement text for the region: no commentary, no explanations, "
    "no code fences, and do not repeat the <region> markers."
)

SURROUNDING_TEXT_HEADER = (
    "Surrounding text (for reference only, it is not part of the region and must not be output):"
)

POINT_COMPLETION_INSTRUCTIONS = (
    "Continue the text at the <cursor> marker. Output only the text to insert at the cursor. "
    "Keep it short, do not add comments, do not wrap it in quotes, "
    "and do not repeat the text around the cursor."
)

TITLE_INSTRUCTIONS = (
    "Write a single short title of at most {max_length} characters for the conversation above. "
    "Output only the title, without quotes and without any additional commentary."
)


def build_prompt(
    instruction: str,
    context_block: Optional[str] = None,
    input_block: Optional[str] = None,
    mode: SessionMode = SessionMode.CHAT,
    *,
    transcript: Optional[str] = None,
    before: str = "",
    after: str = "",
    title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
) -> str:
    """Assemble the prompt for ``mode``.

    ``input_block`` is the region/buffer content for chat prompts and the region
    text for region transforms. ``before``/``after`` carry the untouched text
    around a region or the cursor. ``transcript`` is the prior conversation for
    follow-ups and title generation.
    """
    if mode in (SessionMode.CHAT, SessionMode.FOLLOW_UP):
        prior = transcript if mode is SessionMode.FOLLOW_UP else None
        return _chat_prompt(instruction, context_block, input_block, transcript=prior)
    if mode is SessionMode.REGION_TRANSFORM:
        return _region_prompt(instruction, context_block, input_block or "", before, after)
    if mode is SessionMode.POINT_COMPLETION:
        return _completion_prompt(context_block, before, after)
    if mode is SessionMode.TITLE_GENERATION:
        return _title_prompt(transcript or "", max_length=title_max_length)
    raise ValueError(f"Unknown session mode: {mode!r}")


def user_turn(instruction: str) -> str:
    """Return the role-marked user turn that hands over to the assistant."""
    return f"{USER_MARKER} {instruction}\n\n{ASSISTANT_MARKER}"


def buffers_input(buffers: Sequence[TextBuffer]) -> str:
    """Input block for several buffers: each one labelled with its name and fenced, in order."""
    return "\n\n".join(
        f"{BUFFER_LABEL.format(name=buffer.name)}\n{fence(buffer.text)}" for buffer in buffers
    )


def _chat_prompt(
    instruction: str,
    context_block: Optional[str],
    input_block: Optional[str],
    *,
    transcript: Optional[str] = None,
) -> str:
    sections: List[str] = []
    if context_block:
        sections.append(f"{USER_MARKER}\n\n{context_block.rstrip()}")
    if transcript and transcript.strip():
        sections.append(transcript.rstrip())
    if input_block:
        sections.append(f"{USER_MARKER}\n\n{fence(input_block)}")
    sections.append(user_turn(instruction))
    return "\n\n".join(sections)


def _region_prompt(
    instruction: str,
    context_block: Optional[str],
    region: str,
    before: str,
    after: str,
) -> str:
    sections: List[str] = []
    if context_block:
        sections.append(context_block.rstrip())
    sections.append(f"{USER_MARKER} {instruction}")
    sections.append(f"{REGION_MARKER}{region}{REGION_MARKER}")
    sections.append(REGION_TRANSFORM_INSTRUCTIONS)
    sections.append(
        f"{SURROUNDING_TEXT_HEADER}\n"
        f"[text before the region]\n{before}\n"
        f"[text after the region]\n{after}"
    )
    return "\n\n".join(sections)


def _completion_prompt(context_block: Optional[str], before: str, after: str) -> str:
    sections: List[str] = []
    if context_block:
        sections.append(context_block.rstrip())
    sections.append(f"{before}{CURSOR_MARKER}{after}")
    sections.append(POINT_COMPLETION_INSTRUCTIONS)
    return "\n\n".join(sections)


def _title_prompt(transcript: str, *, max_length: int) -> str:
    instruction = TITLE_INSTRUCTIONS.format(max_length=max_length)
    if not transcript.strip():
        return user_turn(instruction)
    return f"{transcript.rstrip()}\n\n{user_turn(instruction)}"


__all__ = [
    "ASSISTANT_MARKER",
    "BUFFER_LABEL",
    "CURSOR_MARKER",
    "POINT_COMPLETION_INSTRUCTIONS",
    "REGION_MARKER",
    "REGION_TRANSFORM_INSTRUCTIONS",
    "SURROUNDING_TEXT_HEADER",
    "TITLE_INSTRUCTIONS",
    "USER_MARKER",
    "build_prompt",
    "buffers_input",
    "user_turn",
]
