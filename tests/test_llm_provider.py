import json

import pytest

from gpt_stream.providers.llm import create_client
from gpt_stream.providers.llm.anthropic import AnthropicClient
from gpt_stream.providers.llm.base import (
    LLMRateLimitError,
    LLMResponseError,
    LLMRetryExhaustedError,
    RetryConfig,
    StreamHooks,
)
from gpt_stream.providers.llm.openai import OpenAIClient


class FakeResponse:
    def __init__(self, lines=(), status_code=200, text=""):
        self._lines = list(lines)
        self.status_code = status_code
        self.text = text
        self.closed = False

    def iter_lines(self, decode_unicode=False):
        return iter(self._lines)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
        return False


def _install_post(monkeypatch, responses):
    calls = []

    def fake_post(url, headers=None, data=None, timeout=None, stream=False):
        calls.append({"url": url, "headers": headers, "payload": json.loads(data), "stream": stream})
        return responses.pop(0)

    monkeypatch.setattr("gpt_stream.providers.llm.base.requests.post", fake_post)
    monkeypatch.setattr("gpt_stream.providers.llm.base.time.sleep", lambda _seconds: None)
    return calls


def test_openai_stream_yields_deltas(monkeypatch):
    lines = [
        'data: {"choices":[{"delta":{"role":"assistant"}}]}',
        "",
        'data: {"choices":[{"delta":{"content":"Hel"}}]}',
        ": keep-alive",
        'data: {"choices":[{"delta":{"content":"lo"}}]}',
        "data: [DONE]",
        'data: {"choices":[{"delta":{"content":"ignored"}}]}',
    ]
    calls = _install_post(monkeypatch, [FakeResponse(lines)])
    completed = []
    client = OpenAIClient(api_key="sk-test", model="gpt-test")

    chunks = list(
        client.stream("Hi", temperature=0.3, max_tokens=50, hooks=StreamHooks(on_complete=completed.append))
    )

    assert chunks == ["Hel", "lo"]
    assert completed == ["Hello"]
    call = calls[0]
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["stream"] is True
    assert call["payload"] == {
        "model": "gpt-test",
        "messages": [{"role": "user", "content": "Hi"}],
        "temperature": 0.3,
        "stream": True,
        "max_tokens": 50,
    }


def test_anthropic_stream_parses_text_deltas(monkeypatch):
    lines = [
        "event: message_start",
        'data: {"type":"message_start","message":{}}',
        'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"Bon"}}',
        'data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"jour"}}',
        'data: {"type":"message_stop"}',
    ]
    calls = _install_post(monkeypatch, [FakeResponse(lines)])
    client = AnthropicClient(api_key="ak-test", model="claude-test")

    assert list(client.stream("Salut")) == ["Bon", "jour"]
    assert calls[0]["url"] == "https://api.anthropic.com/v1/messages"
    assert calls[0]["headers"]["x-api-key"] == "ak-test"
    assert calls[0]["payload"]["max_tokens"] == 2000


def test_anthropic_error_event_raises(monkeypatch):
    lines = ['data: {"type":"error","error":{"type":"overloaded_error","message":"busy"}}']
    _install_post(monkeypatch, [FakeResponse(lines)])
    client = AnthropicClient(api_key="ak-test", model="claude-test")

    with pytest.raises(LLMResponseError):
        list(client.stream("Salut"))


def test_retryable_status_is_retried(monkeypatch):
    responses = [
        FakeResponse(status_code=429, text="slow down"),
        FakeResponse(['data: {"choices":[{"delta":{"content":"ok"}}]}']),
    ]
    calls = _install_post(monkeypatch, responses)
    client = OpenAIClient(api_key="sk-test", model="gpt-test")

    assert list(client.stream("Hi")) == ["ok"]
    assert len(calls) == 2


def test_retries_exhausted(monkeypatch):
    _install_post(monkeypatch, [FakeResponse(status_code=503, text="down") for _ in range(2)])
    client = OpenAIClient(api_key="sk-test", model="gpt-test", retry_config=RetryConfig(max_retries=2))

    with pytest.raises(LLMRetryExhaustedError):
        list(client.stream("Hi"))


def test_client_error_is_not_retried(monkeypatch):
    calls = _install_post(monkeypatch, [FakeResponse(status_code=401, text="bad key")])
    client = OpenAIClient(api_key="sk-test", model="gpt-test")

    with pytest.raises(LLMResponseError, match="401"):
        list(client.stream("Hi"))
    assert len(calls) == 1


def test_backoff_jitter_range(monkeypatch):
    config = RetryConfig(initial_delay=1.0, max_delay=10.0, backoff_multiplier=2.0, jitter_ratio=0.25)
    client = OpenAIClient(api_key="test", model="demo", retry_config=config)
    captured = {}

    def fake_uniform(low: float, high: float) -> float:
        captured["low"] = low
        captured["high"] = high
        return high

    monkeypatch.setattr("gpt_stream.providers.llm.base.random.uniform", fake_uniform)

    assert client._calculate_delay(3) == pytest.approx(5.0)
    assert captured["low"] == pytest.approx(3.0)
    assert captured["high"] == pytest.approx(5.0)


def test_error_mapping():
    client = OpenAIClient(api_key="test", model="demo")
    assert isinstance(client._error_from_status(429, "Too Many Requests"), LLMRateLimitError)
    assert isinstance(client._error_from_status(500, "Server error"), LLMResponseError)


def test_create_client_by_provider_name():
    assert isinstance(create_client("OpenAI", "k", "m"), OpenAIClient)
    client = create_client("anthropic", "k", "m", base_url="http://localhost:9000/v1/")
    assert isinstance(client, AnthropicClient)
    assert client.base_url == "http://localhost:9000/v1"
    with pytest.raises(ValueError):
        create_client("llamafile", "k", "m")
