"""Layered configuration loader for babelbatch.

Sources, lowest precedence first: ``~/.babelbatch.yaml``, ``./babelbatch.yaml``,
``./.env`` and finally the process environment.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import TranslationProviderConfigurationError
from .segmenter import (
    DEFAULT_BATCH_MAX_CHARS,
    DEFAULT_BATCH_MAX_ITEMS,
    DEFAULT_CHUNK_MAX_LENGTH,
)

CONFIG_FILENAME = "babelbatch.yaml"

DEFAULT_PROVIDER = "openai"
DEFAULT_SOURCE_LANGUAGE = "auto"
DEFAULT_TARGET_LANGUAGE = "en"
DEFAULT_BATCH_THROTTLE_MS = 100
DEFAULT_OLLAMA_HOST = "http://127.0.0.1:11434"

# Scalar settings that can be overridden from the environment.
ENV_FIELDS = {
    "BABELBATCH_DEFAULT_PROVIDER": "default_provider",
    "BABELBATCH_DEFAULT_SOURCE_LANGUAGE": "default_source_language",
    "BABELBATCH_DEFAULT_TARGET_LANGUAGE": "default_target_language",
    "BABELBATCH_BATCH_MAX_CHARS": "batch_max_chars",
    "BABELBATCH_BATCH_MAX_ITEMS": "batch_max_items",
    "BABELBATCH_BATCH_THROTTLE_MS": "batch_throttle_ms",
    "BABELBATCH_SELECTION_CHUNK_MAX_LENGTH": "selection_chunk_max_length",
    "BABELBATCH_PROVIDER_DEBUG": "provider_debug",
    "BABELBATCH_LOG_LEVEL": "log_level",
}

# Vendor credentials, mapped to (provider, field).
ENV_PROVIDER_FIELDS = {
    "OPENAI_API_KEY": ("openai", "api_key"),
    "OPENAI_BASE_URL": ("openai-compatible", "base_url"),
    "OPENAI_MODEL": ("openai", "model"),
    "ANTHROPIC_API_KEY": ("anthropic", "api_key"),
    "ANTHROPIC_MODEL": ("anthropic", "model"),
    "GEMINI_API_KEY": ("gemini", "api_key"),
    "GEMINI_MODEL": ("gemini", "model"),
    "OLLAMA_HOST": ("ollama", "host"),
    "OLLAMA_MODEL": ("ollama", "model"),
}


class ProviderSettings(BaseModel):
    """Per-vendor settings."""

    enabled: bool = True
    api_key: Optional[str] = Field(default=None, repr=False)
    base_url: Optional[str] = None
    model: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 2000
    host: Optional[str] = None


class BabelBatchConfig(BaseModel):
    """Schema describing all supported configuration options."""

    default_provider: str = DEFAULT_PROVIDER
    default_source_language: str = DEFAULT_SOURCE_LANGUAGE
    default_target_language: str = DEFAULT_TARGET_LANGUAGE
    batch_max_chars: int = Field(default=DEFAULT_BATCH_MAX_CHARS, gt=0)
    batch_max_items: int = Field(default=DEFAULT_BATCH_MAX_ITEMS, gt=0)
    batch_throttle_ms: int = Field(default=DEFAULT_BATCH_THROTTLE_MS, ge=0)
    selection_chunk_max_length: int = Field(default=DEFAULT_CHUNK_MAX_LENGTH, gt=0)
    provider_debug: bool = False
    log_level: str = "WARNING"
    providers: Dict[str, ProviderSettings] = Field(default_factory=dict)

    @field_validator("default_provider", mode="before")
    @classmethod
    def _normalise_provider(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            synonyms = {
                "claude": "anthropic",
                "google": "gemini",
                "openai-compat": "openai-compatible",
            }
            return synonyms.get(normalized, normalized)
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("default_source_language", mode="before")
    @classmethod
    def _default_source(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_SOURCE_LANGUAGE
        return value

    def provider(self, name: str) -> ProviderSettings:
        """Settings for ``name``, defaults when the vendor is not configured."""

        return self.providers.get(name) or ProviderSettings()

    @property
    def batch_throttle_seconds(self) -> float:
        return self.batch_throttle_ms / 1000.0


def _discover_yaml_paths(app_dir: Path) -> list[Path]:
    candidates = [Path.home() / f".{CONFIG_FILENAME}", app_dir / CONFIG_FILENAME]
    return [path for path in candidates if path.is_file()]


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        raise TranslationProviderConfigurationError(
            f"Configuration file {path} could not be read: {exc}"
        ) from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise TranslationProviderConfigurationError(
            f"Invalid configuration file {path}: expected a mapping at the root."
        )
    return dict(parsed)


def merge_layer(target: dict[str, Any], layer: Mapping[str, Any]) -> None:
    """Deep-merge ``layer`` into ``target``; later layers win."""

    for key, value in layer.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            merge_layer(target[key], value)
        elif isinstance(value, Mapping):
            target[key] = {}
            merge_layer(target[key], value)
        else:
            target[key] = value


def _env_layer(values: Mapping[str, Optional[str]]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key, value in sorted(values.items()):
        if value is None or value == "":
            continue
        if key in ENV_FIELDS:
            layer[ENV_FIELDS[key]] = value
        elif key in ENV_PROVIDER_FIELDS:
            provider, field_name = ENV_PROVIDER_FIELDS[key]
            layer.setdefault("providers", {}).setdefault(provider, {})[field_name] = value
    return layer


def load_config(
    app_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BabelBatchConfig:
    """Read every configuration layer and validate the merged result."""

    base_dir = app_dir or Path.cwd()
    combined: dict[str, Any] = {}

    for path in _discover_yaml_paths(base_dir):
        merge_layer(combined, _load_yaml(path))

    dotenv_path = base_dir / ".env"
    if dotenv_path.exists():
        merge_layer(combined, _env_layer(dotenv_values(dotenv_path)))

    merge_layer(combined, _env_layer(os.environ if environ is None else environ))

    try:
        return BabelBatchConfig.model_validate(combined)
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _format_validation_errors(exc.errors())
        ) from exc


def _format_validation_errors(entries: Sequence[Mapping[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("loc") or []
        location = ".".join(str(part) for part in path if part not in {None, ""})
        message = str(entry.get("msg") or "Invalid value")
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


@lru_cache(maxsize=1)
def _cached_settings(app_dir: Path | None) -> BabelBatchConfig:
    return load_config(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> BabelBatchConfig:
    """Return the validated settings, loaded once per process."""

    return _cached_settings(app_dir)


def clear_settings_cache() -> None:
    _cached_settings.cache_clear()
