"""LLM provider clients used by the default model subprocess."""
from __future__ import annotations

from typing import Optional

from .anthropic import DEFAULT_BASE_URL as ANTHROPIC_DEFAULT_BASE_URL
from .anthropic import AnthropicClient
from .base import (
    HTTPStreamingClient,
    LLMClient,
    LLMConnectionError,
    LLMError,
    LLMRateLimitError,
    LLMResponseError,
    LLMRetryExhaustedError,
    LLMTimeoutError,
    RetryConfig,
    StreamHooks,
)
from .openai import DEFAULT_BASE_URL as OPENAI_DEFAULT_BASE_URL
from .openai import OpenAIClient


def create_client(
    provider: str,
    api_key: str,
    model: str,
    *,
    base_url: Optional[str] = None,
    timeout: float = 120.0,
    retry_config: RetryConfig | None = None,
) -> HTTPStreamingClient:
    """Return the streaming client for ``provider`` (``openai`` or ``anthropic``)."""
    key = provider.lower().strip()
    if key == "openai":
        return OpenAIClient(
            api_key,
            model,
            base_url=base_url or OPENAI_DEFAULT_BASE_URL,
            timeout=timeout,
            retry_config=retry_config,
        )
    if key == "anthropic":
        return AnthropicClient(
            api_key,
            model,
            base_url=base_url or ANTHROPIC_DEFAULT_BASE_URL,
            timeout=timeout,
            retry_config=retry_config,
        )
    raise ValueError(f"Unsupported provider: {provider}")


__all__ = [
    "ANTHROPIC_DEFAULT_BASE_URL",
    "AnthropicClient",
    "HTTPStreamingClient",
    "LLMClient",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseError",
    "LLMRetryExhaustedError",
    "LLMTimeoutError",
    "OPENAI_DEFAULT_BASE_URL",
    "OpenAIClient",
    "RetryConfig",
    "StreamHooks",
    "create_client",
]
