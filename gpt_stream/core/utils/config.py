"""Configuration loading utilities for the streaming client."""
from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore

from .constants import (
    DEFAULT_BUFFER_NAME_LENGTH,
    DEFAULT_LIVENESS_INTERVAL,
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TEMPERATURE,
    DEFAULT_TITLE_MAX_LENGTH,
    MAX_HISTORY_ENTRIES,
    SUPPORTED_PROVIDERS,
)
from .logger import get_logger

LOGGER = get_logger(__name__)

CONFIG_FILENAMES: tuple[str, ...] = (".gpt-stream.toml", "gpt-stream.toml")
DEFAULT_CONFIG_PATHS = (
    Path.home() / ".config" / "gpt-stream" / "config.toml",
    Path.home() / ".gpt-stream.toml",
)

_BOOL_FIELDS = {"use_named_buffers", "structured_logging"}
_INT_FIELDS = {"max_tokens", "buffer_name_length", "title_max_length", "history_max_entries"}
_FLOAT_FIELDS = {"temperature", "liveness_interval", "request_timeout"}
_PATH_FIELDS = {"state_file"}

# Provider credentials also honoured from the conventional variables.
_CREDENTIAL_ENV = {
    "openai_api_key": "OPENAI_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
}


def find_config_in_parents(
    start_path: Path, config_name: str | Sequence[str] = ".gpt-stream.toml"
) -> Optional[Path]:
    """Search parent directories starting from ``start_path`` for configuration files."""

    if isinstance(config_name, str):
        candidate_names: tuple[str, ...] = (config_name,)
    else:
        candidate_names = tuple(config_name)

    current = start_path.resolve()
    if current.is_file():
        current = current.parent

    while True:
        for name in candidate_names:
            candidate = current / name
            if candidate.is_file():
                return candidate.resolve()
        if current.parent == current:
            break
        current = current.parent
    return None


@dataclass
class Settings:
    """Runtime configuration for the client and its model subprocess."""

    provider: str = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    request_timeout: float = 120.0
    backend_command: tuple[str, ...] = ()
    use_named_buffers: bool = True
    buffer_name_length: int = DEFAULT_BUFFER_NAME_LENGTH
    title_max_length: int = DEFAULT_TITLE_MAX_LENGTH
    liveness_interval: float = DEFAULT_LIVENESS_INTERVAL
    completion_accept_key: str = "\t"
    history_max_entries: int = MAX_HISTORY_ENTRIES
    state_file: Path = Path(".gpt-stream/state.json")
    log_level: str = "INFO"
    structured_logging: bool = False

    def api_key(self, provider: Optional[str] = None) -> str:
        """Return the credential for ``provider`` (defaults to the active one)."""
        name = (provider or self.provider).lower()
        if name not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported provider '{name}'. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        key = getattr(self, f"{name}_api_key", None)
        if not key:
            LOGGER.warning("No API key configured for provider '%s'.", name)
            return ""
        return key

    def resolved_backend_command(self) -> list[str]:
        """Return the argv prefix used to launch the model subprocess."""
        if self.backend_command:
            return list(self.backend_command)
        return [sys.executable, "-m", "gpt_stream.backend"]

    def backend_arguments(self, prompt_path: Path, api_key: Optional[str] = None) -> list[str]:
        """Return the full argv for one model invocation."""
        provider = self.provider.lower()
        return [
            *self.resolved_backend_command(),
            str(prompt_path),
            self.api_key(provider) if api_key is None else api_key,
            self.model,
            str(self.max_tokens),
            str(self.temperature),
            provider,
        ]


def _cast_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "on", "yes", "y"}
    return bool(value)


def _load_from_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    return {k.replace("-", "_"): v for k, v in data.items()}


def _load_from_env(prefix: str = "GPT_STREAM_") -> Dict[str, Any]:
    env: Dict[str, Any] = {}
    for field, variable in _CREDENTIAL_ENV.items():
        if os.environ.get(variable):
            env[field] = os.environ[variable]
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        field = key[len(prefix) :].lower()
        if field in _BOOL_FIELDS:
            env[field] = _cast_bool(value)
        elif field in _INT_FIELDS:
            env[field] = int(value)
        elif field in _FLOAT_FIELDS:
            env[field] = float(value)
        elif field in _PATH_FIELDS:
            env[field] = Path(value)
        elif field == "backend_command":
            env[field] = tuple(shlex.split(value))
        else:
            env[field] = value
    return env


def _normalize(merged: Dict[str, Any]) -> Dict[str, Any]:
    for key in _PATH_FIELDS:
        if isinstance(merged.get(key), str):
            merged[key] = Path(merged[key])
    command = merged.get("backend_command")
    if isinstance(command, str):
        merged["backend_command"] = tuple(shlex.split(command))
    elif command is not None and not isinstance(command, tuple):
        merged["backend_command"] = tuple(command)
    if "provider" in merged and isinstance(merged["provider"], str):
        merged["provider"] = merged["provider"].lower()
    return merged


def load_settings(explicit_path: Optional[Path] = None) -> Settings:
    """Load configuration, merging file and environment sources."""

    file_data: Dict[str, Any] = {}
    if explicit_path:
        file_data.update(_load_from_file(explicit_path))
    else:
        search_paths = []
        cwd = Path.cwd()
        project_config = find_config_in_parents(cwd, CONFIG_FILENAMES)
        if project_config:
            search_paths.append(project_config)
        search_paths.extend(DEFAULT_CONFIG_PATHS)
        seen_paths = set()
        for candidate in search_paths:
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)
            file_data = _load_from_file(candidate)
            if file_data:
                LOGGER.debug("Loaded configuration from %s", candidate)
                break

    env_data = _load_from_env()
    merged = _normalize({**file_data, **env_data})

    known_fields = set(Settings.__dataclass_fields__)
    unknown = sorted(key for key in merged if key not in known_fields)
    if unknown:
        LOGGER.debug("Ignoring unknown configuration keys: %s", ", ".join(unknown))
    settings = Settings(**{key: value for key, value in merged.items() if key in known_fields})
    if settings.provider not in SUPPORTED_PROVIDERS:
        raise ValueError(
            f"Unsupported provider '{settings.provider}'. Expected one of: {', '.join(SUPPORTED_PROVIDERS)}"
        )
    return settings


__all__ = ["Settings", "load_settings", "find_config_in_parents", "CONFIG_FILENAMES"]
