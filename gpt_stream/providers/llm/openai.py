"""OpenAI chat-completions streaming client."""
from __future__ import annotations

from typing import Any, Dict, Optional

from .base import HTTPStreamingClient, RetryConfig

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIClient(HTTPStreamingClient):
    """Stream a single user-turn prompt through ``/chat/completions``."""

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
            "OpenAI",
            api_key,
            model,
            base_url=base_url,
            timeout=timeout,
            retry_config=retry_config,
        )

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _prepare_payload(self, prompt: str, temperature: float, max_tokens: int | None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "stream": True,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return payload

    def _parse_stream_event(self, data: Dict[str, Any]) -> Optional[str]:
        try:
            delta = data["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, AttributeError):
            return None
        if not delta:
            return None
        if isinstance(delta, str):
            return delta
        return str(delta)


__all__ = ["OpenAIClient", "DEFAULT_BASE_URL"]
