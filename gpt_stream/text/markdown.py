"""Fenced code block extraction from model output."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

_FENCE_RE = re.compile(
    r"^(?P<fence>`{3,}|~{3,})[ \t]*(?P<lang>[\w+#.-]*)[^\n]*\n(?P<body>.*?)^(?P=fence)[ \t]*$",
    re.MULTILINE | re.DOTALL,
)


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str
    start: int
    end: int


def extract_code_blocks(text: str) -> List[CodeBlock]:
    """Return fenced code blocks in document order.

    Unterminated fences (e.g. a response still streaming) are ignored.
    """
    blocks: List[CodeBlock] = []
    for match in _FENCE_RE.finditer(text):
        body = match.group("body")
        if body.endswith("\n"):
            body = body[:-1]
        blocks.append(
            CodeBlock(
                language=match.group("lang") or "",
                code=body,
                start=match.start(),
                end=match.end(),
            )
        )
    return blocks


def fence(text: str, language: str = "") -> str:
    """Wrap ``text`` in a code fence long enough not to clash with its content."""
    longest = max((len(run) for run in re.findall(r"`{3,}", text)), default=2)
    marker = "`" * max(3, longest + 1)
    body = text if text.endswith("\n") else text + "\n"
    return f"{marker}{language}\n{body}{marker}"


__all__ = ["CodeBlock", "extract_code_blocks", "fence"]
