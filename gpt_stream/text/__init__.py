"""Text targets the streaming core writes into."""
from .buffer import BufferError, BufferRegistry, Marker, Overlay, TextBuffer, TextChange, TextTarget
from .markdown import CodeBlock, extract_code_blocks, fence

__all__ = [
    "BufferError",
    "BufferRegistry",
    "CodeBlock",
    "Marker",
    "Overlay",
    "TextBuffer",
    "TextChange",
    "TextTarget",
    "extract_code_blocks",
    "fence",
]
