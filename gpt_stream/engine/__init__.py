"""Orchestration of streaming sessions."""
from .orchestrator import ChatOrchestrator

__all__ = ["ChatOrchestrator"]
