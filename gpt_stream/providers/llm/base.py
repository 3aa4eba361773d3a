"""Abstractions for streaming LLM providers used by the model subprocess."""
from __future__ import annotations

import json
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Protocol

import requests

from gpt_stream.core.utils.logger import get_logger

LOGGER = get_logger(__name__)


@dataclass
class StreamHooks:
    """Hooks for streaming responses."""
    on_start: Callable[[], None] | None = None
    on_chunk: Callable[[str], None] | None = None
    on_complete: Callable[[str], None] | None = None
    on_error: Callable[[Exception], None] | None = None


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 5.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1
    retryable_status_codes: set[int] = field(default_factory=lambda: {429, 500, 502, 503, 504, 529})


class LLMError(RuntimeError):
    """Raised when an LLM provider encounters an error."""


class LLMRateLimitError(LLMError):
    """Raised when the provider reports a rate limit condition."""


class LLMTimeoutError(LLMError):
    """Raised when a request times out before the provider responds."""


class LLMConnectionError(LLMError):
    """Raised when the client is unable to reach the provider."""


class LLMResponseError(LLMError):
    """Raised when the provider returns a malformed or error response."""


class LLMRetryExhaustedError(LLMError):
    """Raised when retry attempts are exhausted without success."""


class LLMClient(Protocol):
    """Protocol for prompt-streaming LLM clients."""

    def stream(
        self,
        prompt: str,
        *,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        hooks: StreamHooks | None = None,
    ) -> Iterable[str]:
        """Stream the completion of a single prompt."""
        ...


class HTTPStreamingClient(LLMClient, ABC):
    """Common HTTP/SSE client functionality shared by provider implementations."""

    _STREAM_PATH = "/chat/completions"

    def __init__(
        self,
        provider_name: str,
        api_key: str,
        model: str,
        *,
        base_url: str,
        timeout: float = 120.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._provider_name = provider_name
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()

    def configure_retry(self, retry_config: RetryConfig) -> None:
        """Configure retry behavior."""
        self.retry_config = retry_config

    # ------------------------------------------------------------------
    # Provider specifics
    # ------------------------------------------------------------------

    @abstractmethod
    def _build_headers(self) -> Dict[str, str]:
        """Return the authentication and content headers."""

    @abstractmethod
    def _prepare_payload(self, prompt: str, temperature: float, max_tokens: int | None) -> Dict[str, Any]:
        """Return the provider-specific streaming request payload."""

    @abstractmethod
    def _parse_stream_event(self, data: Dict[str, Any]) -> Optional[str]:
        """Return the text delta carried by one decoded SSE event, if any."""

    def _is_stream_end(self, raw: str) -> bool:
        return raw == "[DONE]"

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _request_url(self) -> str:
        return f"{self.base_url}{self._STREAM_PATH}"

    def _error_from_status(self, status_code: int, response_text: str) -> LLMError:
        message = f"{self._provider_name} API error {status_code}: {response_text}"
        if status_code == 429:
            return LLMRateLimitError(message)
        if status_code in {408, 504}:
            return LLMTimeoutError(message)
        if status_code in {502, 503}:
            return LLMConnectionError(message)
        return LLMResponseError(message)

    def _calculate_delay(self, attempt: int) -> float:
        base_delay = min(
            self.retry_config.max_delay,
            self.retry_config.initial_delay * (self.retry_config.backoff_multiplier ** (attempt - 1)),
        )
        if base_delay <= 0:
            return 0.0
        jitter_ratio = max(0.0, self.retry_config.jitter_ratio)
        if jitter_ratio == 0:
            return base_delay
        jitter_span = base_delay * jitter_ratio
        lower = max(0.0, base_delay - jitter_span)
        upper = base_delay + jitter_span
        return random.uniform(lower, upper)

    def _wrap_transport_error(self, exc: Exception) -> LLMError:
        if isinstance(exc, requests.Timeout):
            return LLMTimeoutError(f"{self._provider_name} request timed out: {exc}")
        return LLMConnectionError(f"{self._provider_name} connection failed: {exc}")

    def _open_stream(self, payload: Dict[str, Any]) -> requests.Response:
        """POST the streaming request, retrying until a response starts streaming."""
        url = self._request_url()
        headers = self._build_headers()
        body = json.dumps(payload)
        last_error: LLMError | None = None

        for attempt in range(1, self.retry_config.max_retries + 1):
            try:
                response = requests.post(
                    url,
                    headers=headers,
                    data=body,
                    timeout=self.timeout,
                    stream=True,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = self._wrap_transport_error(exc)
                if attempt == self.retry_config.max_retries:
                    raise last_error from exc
                time.sleep(self._calculate_delay(attempt))
                continue
            except requests.RequestException as exc:
                raise LLMResponseError(f"{self._provider_name} request failed: {exc}") from exc

            if response.status_code in self.retry_config.retryable_status_codes:
                error = self._error_from_status(response.status_code, response.text)
                response.close()
                last_error = error
                if attempt == self.retry_config.max_retries:
                    raise LLMRetryExhaustedError(
                        f"{self._provider_name} request exhausted retries: {error}"
                    ) from error
                LOGGER.debug("Retrying %s request after status %s", self._provider_name, response.status_code)
                time.sleep(self._calculate_delay(attempt))
                continue

            if response.status_code >= 400:
                error = self._error_from_status(response.status_code, response.text)
                response.close()
                raise error

            return response

        if last_error is None:
            raise LLMRetryExhaustedError(f"{self._provider_name} request failed for an unknown reason")
        raise LLMRetryExhaustedError(
            f"{self._provider_name} request failed after {self.retry_config.max_retries} attempts: {last_error}"
        ) from last_error

    def _iter_events(self, response: requests.Response) -> Iterator[Dict[str, Any]]:
        for line in response.iter_lines(decode_unicode=True):
            if not line or not line.startswith("data:"):
                continue
            raw = line[len("data:"):].strip()
            if self._is_stream_end(raw):
                break
            try:
                yield json.loads(raw)
            except json.JSONDecodeError:
                LOGGER.debug("Skipping undecodable stream line: %s", raw[:200])
                continue

    # ------------------------------------------------------------------
    # High level API
    # ------------------------------------------------------------------

    def stream(
        self,
        prompt: str,
        *,
        temperature: float = 0.0,
        max_tokens: int | None = None,
        hooks: StreamHooks | None = None,
    ) -> Iterable[str]:
        payload = self._prepare_payload(prompt, temperature, max_tokens)
        accumulated: list[str] = []

        try:
            if hooks and hooks.on_start:
                hooks.on_start()
            with self._open_stream(payload) as response:
                for event in self._iter_events(response):
                    delta = self._parse_stream_event(event)
                    if not delta:
                        continue
                    accumulated.append(delta)
                    if hooks and hooks.on_chunk:
                        hooks.on_chunk(delta)
                    yield delta
        except requests.RequestException as exc:
            error = self._wrap_transport_error(exc)
            if hooks and hooks.on_error:
                hooks.on_error(error)
            raise error from exc
        except Exception as exc:
            if hooks and hooks.on_error:
                hooks.on_error(exc)
            raise
        else:
            if hooks and hooks.on_complete:
                hooks.on_complete("".join(accumulated))


__all__ = [
    "HTTPStreamingClient",
    "LLMClient",
    "LLMConnectionError",
    "LLMError",
    "LLMRateLimitError",
    "LLMResponseError",
    "LLMRetryExhaustedError",
    "LLMTimeoutError",
    "RetryConfig",
    "StreamHooks",
]
