from __future__ import annotations

import pathlib

import pytest

from babelbatch.configuration import (
    BabelBatchConfig,
    get_settings,
    load_config,
    merge_layer,
)
from babelbatch.errors import TranslationProviderConfigurationError


def write(path: pathlib.Path, content: str) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_any_source(tmp_path: pathlib.Path) -> None:
    settings = load_config(app_dir=tmp_path, environ={})

    assert settings.default_provider == "openai"
    assert settings.default_source_language == "auto"
    assert settings.batch_max_chars == 64000
    assert settings.batch_max_items == 20
    assert settings.batch_throttle_seconds == pytest.approx(0.1)
    assert settings.selection_chunk_max_length == 2000
    assert settings.provider("gemini").temperature == 0.3
    assert settings.provider("gemini").max_tokens == 2000


def test_layers_apply_in_precedence_order(tmp_path: pathlib.Path) -> None:
    write(
        pathlib.Path.home() / ".babelbatch.yaml",
        "default_target_language: fr\nbatch_max_items: 5\nbatch_max_chars: 900\n",
    )
    write(
        tmp_path / "babelbatch.yaml",
        "batch_max_items: 7\n"
        "providers:\n"
        "  ollama:\n"
        "    model: llama3\n"
        "    host: http://gpu-box:11434\n",
    )
    write(tmp_path / ".env", "OLLAMA_MODEL=qwen2\nBABELBATCH_BATCH_MAX_CHARS=1200\n")

    settings = load_config(
        app_dir=tmp_path,
        environ={"BABELBATCH_BATCH_MAX_CHARS": "1500", "UNRELATED": "x"},
    )

    assert settings.default_target_language == "fr"
    assert settings.batch_max_items == 7
    assert settings.batch_max_chars == 1500
    ollama = settings.provider("ollama")
    assert ollama.model == "qwen2"
    assert ollama.host == "http://gpu-box:11434"


def test_vendor_environment_keys_map_to_providers(tmp_path: pathlib.Path) -> None:
    settings = load_config(
        app_dir=tmp_path,
        environ={
            "OPENAI_API_KEY": "sk-env",
            "OPENAI_BASE_URL": "http://localhost:1234/v1",
            "ANTHROPIC_API_KEY": "ant-env",
            "GEMINI_MODEL": "gemini-1.5-flash",
            "BABELBATCH_PROVIDER_DEBUG": "true",
            "BABELBATCH_DEFAULT_PROVIDER": "Claude",
            "BABELBATCH_LOG_LEVEL": "debug",
            "OLLAMA_HOST": "",
        },
    )

    assert settings.provider("openai").api_key == "sk-env"
    assert settings.provider("openai-compatible").base_url == "http://localhost:1234/v1"
    assert settings.provider("anthropic").api_key == "ant-env"
    assert settings.provider("gemini").model == "gemini-1.5-flash"
    assert settings.provider("ollama").host is None
    assert settings.provider_debug is True
    assert settings.default_provider == "anthropic"
    assert settings.log_level == "DEBUG"


def test_api_key_is_hidden_from_repr() -> None:
    settings = BabelBatchConfig(providers={"openai": {"api_key": "sk-secret"}})

    assert "sk-secret" not in repr(settings)


def test_invalid_values_raise_configuration_error(tmp_path: pathlib.Path) -> None:
    write(tmp_path / "babelbatch.yaml", "batch_max_items: 0\nbatch_throttle_ms: -5\n")

    with pytest.raises(TranslationProviderConfigurationError) as excinfo:
        load_config(app_dir=tmp_path, environ={})

    message = str(excinfo.value)
    assert message.startswith("Configuration validation errors detected:")
    assert "batch_max_items" in message
    assert "batch_throttle_ms" in message


def test_non_mapping_yaml_is_rejected(tmp_path: pathlib.Path) -> None:
    write(tmp_path / "babelbatch.yaml", "- just\n- a list\n")

    with pytest.raises(TranslationProviderConfigurationError):
        load_config(app_dir=tmp_path, environ={})


def test_empty_source_language_means_auto() -> None:
    assert BabelBatchConfig(default_source_language="  ").default_source_language == "auto"


def test_merge_layer_is_deep() -> None:
    target = {"providers": {"openai": {"model": "a", "api_key": "k"}}, "x": 1}

    merge_layer(target, {"providers": {"openai": {"model": "b"}, "ollama": {"model": "m"}}})

    assert target == {
        "providers": {"openai": {"model": "b", "api_key": "k"}, "ollama": {"model": "m"}},
        "x": 1,
    }


def test_get_settings_is_cached(tmp_path: pathlib.Path, monkeypatch) -> None:
    monkeypatch.setenv("BABELBATCH_DEFAULT_TARGET_LANGUAGE", "ja")

    first = get_settings()
    monkeypatch.setenv("BABELBATCH_DEFAULT_TARGET_LANGUAGE", "ko")

    assert get_settings() is first
    assert first.default_target_language == "ja"
