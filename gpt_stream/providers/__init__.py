"""Model provider integrations."""
from . import llm

__all__ = ["llm"]
