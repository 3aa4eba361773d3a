"""Anthropic messages-API streaming client."""
from __future__ import annotations

from typing import Any, Dict, Optional

from .base import HTTPStreamingClient, LLMResponseError, RetryConfig

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
# The messages API requires max_tokens on every request.
FALLBACK_MAX_TOKENS = 2000


class AnthropicClient(HTTPStreamingClient):
    """Stream a single user-turn prompt through ``/messages``."""

    _STREAM_PATH = "/messages"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        super().__init__(
            "Anthropic",
            api_key,
            model,
            base_url=base_url,
            timeout=timeout,
            retry_config=retry_config,
        )

    def _build_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _prepare_payload(self, prompt: str, temperature: float, max_tokens: int | None) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens or FALLBACK_MAX_TOKENS,
            "stream": True,
        }

    def _is_stream_end(self, raw: str) -> bool:
        return False

    def _parse_stream_event(self, data: Dict[str, Any]) -> Optional[str]:
        event_type = data.get("type")
        if event_type == "error":
            error = data.get("error") or {}
            raise LLMResponseError(
                f"Anthropic stream error: {error.get('type', 'unknown')}: {error.get('message', '')}"
            )
        if event_type != "content_block_delta":
            return None
        delta = data.get("delta") or {}
        if delta.get("type") != "text_delta":
            return None
        text = delta.get("text")
        return text or None


__all__ = ["AnthropicClient", "DEFAULT_BASE_URL"]
