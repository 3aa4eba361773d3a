from click.testing import CliRunner

import gpt_stream.backend as backend_module
from gpt_stream.backend import main
from gpt_stream.providers.llm import LLMConnectionError


class FakeClient:
    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.calls = []

    def stream(self, prompt, *, temperature=0.0, max_tokens=None, hooks=None):
        self.calls.append((prompt, temperature, max_tokens))
        yield from self.chunks
        if self.error is not None:
            raise self.error


def _install_client(monkeypatch, client):
    created = []

    def fake_create_client(provider, api_key, model, **kwargs):
        created.append((provider, api_key, model, kwargs))
        return client

    monkeypatch.setattr(backend_module, "create_client", fake_create_client)
    return created


def test_backend_streams_completion_to_stdout(tmp_path, monkeypatch):
    prompt = tmp_path / "prompt.txt"
    prompt.write_text("User: hi\n\nAssistant: ", encoding="utf-8")
    client = FakeClient(["Hel", "lo"])
    created = _install_client(monkeypatch, client)

    result = CliRunner().invoke(main, [str(prompt), "sk-test", "gpt-test", "64", "0.7", "OpenAI"])

    assert result.exit_code == 0, result.output
    assert result.output == "Hello"
    assert client.calls == [("User: hi\n\nAssistant: ", 0.7, 64)]
    assert created[0][:3] == ("openai", "sk-test", "gpt-test")


def test_backend_exits_nonzero_on_provider_error(tmp_path, monkeypatch):
    prompt = tmp_path / "prompt.txt"
    prompt.write_text("hi", encoding="utf-8")
    _install_client(monkeypatch, FakeClient(["par"], error=LLMConnectionError("unreachable")))

    result = CliRunner().invoke(main, [str(prompt), "k", "m", "10", "0", "anthropic"])

    assert result.exit_code == 1
    assert "error: unreachable" in result.output


def test_backend_rejects_invalid_arguments(tmp_path):
    prompt = tmp_path / "prompt.txt"
    prompt.write_text("hi", encoding="utf-8")
    runner = CliRunner()

    assert runner.invoke(main, [str(prompt), "k", "m", "10", "0", "llamafile"]).exit_code == 2
    assert runner.invoke(main, [str(prompt), "k", "m", "zero", "0", "openai"]).exit_code == 2
    assert runner.invoke(main, [str(tmp_path / "missing.txt"), "k", "m", "10", "0", "openai"]).exit_code == 2
