"""Default model subprocess: stream a prompt file through an HTTP provider.

Invoked as ``python -m gpt_stream.backend PROMPT_FILE API_KEY MODEL MAX_TOKENS
TEMPERATURE PROVIDER``. Model output is written to stdout as it arrives; the exit
code is 0 on success, 1 on provider errors and 2 on invalid arguments.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from gpt_stream.core.utils.constants import SUPPORTED_PROVIDERS
from gpt_stream.core.utils.logger import configure_logging, get_logger
from gpt_stream.providers.llm import LLMError, create_client

LOGGER = get_logger(__name__)


@click.command()
@click.argument("prompt_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("api_key")
@click.argument("model")
@click.argument("max_tokens", type=click.IntRange(min=1))
@click.argument("temperature", type=float)
@click.argument("provider", type=click.Choice(SUPPORTED_PROVIDERS, case_sensitive=False))
@click.option("--base-url", envvar="GPT_STREAM_BASE_URL", default=None, help="Override the provider API base URL.")
@click.option("--timeout", envvar="GPT_STREAM_REQUEST_TIMEOUT", type=float, default=120.0, show_default=True)
@click.option("--log-level", envvar="GPT_STREAM_BACKEND_LOG_LEVEL", default="WARNING", show_default=True)
def main(
    prompt_file: Path,
    api_key: str,
    model: str,
    max_tokens: int,
    temperature: float,
    provider: str,
    base_url: Optional[str],
    timeout: float,
    log_level: str,
) -> None:
    """Stream the completion of PROMPT_FILE to stdout."""
    configure_logging(log_level)
    prompt = prompt_file.read_text(encoding="utf-8")
    client = create_client(provider, api_key, model, base_url=base_url, timeout=timeout)
    LOGGER.debug("Streaming %d prompt chars to %s/%s", len(prompt), provider, model)
    try:
        for chunk in client.stream(prompt, temperature=temperature, max_tokens=max_tokens):
            click.echo(chunk, nl=False)
    except LLMError as exc:
        click.echo(f"error: {exc}", err=True)
        raise SystemExit(1) from exc


if __name__ == "__main__":  # pragma: no cover - subprocess entry point
    main()
