"""Tests for the settings persistence layer."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from chatstudio.services.settings import Settings, SettingsStore, redact_secret


@pytest.fixture(autouse=True)
def _clean_env(isolated_settings_env: Path) -> None:
    return None


def test_load_returns_defaults_when_file_missing(tmp_path: Path) -> None:
    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings == Settings()
    assert settings.index_initial_interval == 10.0
    assert settings.index_refresh_interval == 120.0


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    original = Settings(
        service="azure",
        api_key="super-secret",
        azure_resource_name="contoso",
        azure_deployment_id="chat",
        stop_sequences="END,STOP",
        minify_requests=True,
        commands={"Explain": "Describe:"},
        request_timeout=30.0,
    )

    SettingsStore(path).save(original)
    reloaded = SettingsStore(path).load()

    assert reloaded == original
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"model": "gpt-4o", "theme": "dark", "version": 1}), encoding="utf-8")

    settings = SettingsStore(path).load()

    assert settings.model == "gpt-4o"


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(path).load() == Settings()


def test_non_mapping_commands_payload_is_dropped(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"commands": ["Explain"]}), encoding="utf-8")

    assert SettingsStore(path).load().commands == {}


def test_unknown_service_defaults_to_openai(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"service": "Bedrock"}), encoding="utf-8")

    assert SettingsStore(path).load().service == "openai"


def test_cli_overrides_merge_commands(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(Settings(commands={"Explain": "Describe:", "Optimize": "Speed up:"}))

    settings = SettingsStore(path).load(overrides={"commands": {"Explain": "Walk through:"}, "model": None})

    assert settings.commands == {"Explain": "Walk through:", "Optimize": "Speed up:"}
    assert settings.model == Settings().model


def test_environment_overrides_win_over_file_and_cli(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(replace(Settings(), api_key="from-file", temperature=0.1))
    monkeypatch.setenv("CHATSTUDIO_API_KEY", "from-env")
    monkeypatch.setenv("CHATSTUDIO_SERVICE", "AZURE")
    monkeypatch.setenv("CHATSTUDIO_DEBUG_LOGGING", "yes")
    monkeypatch.setenv("CHATSTUDIO_MAX_TOKENS", "512")
    monkeypatch.setenv("CHATSTUDIO_TEMPERATURE", "0.7")

    settings = SettingsStore(path).load(overrides={"api_key": "from-cli"})

    assert settings.api_key == "from-env"
    assert settings.service == "azure"
    assert settings.debug_logging is True
    assert settings.max_tokens == 512
    assert settings.temperature == 0.7


def test_load_without_environment_keeps_file_and_cli_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "settings.json"
    SettingsStore(path).save(replace(Settings(), api_key="from-file"))
    monkeypatch.setenv("CHATSTUDIO_API_KEY", "from-env")
    monkeypatch.setenv("CHATSTUDIO_MODEL", "env-model")

    settings = SettingsStore(path).load(overrides={"temperature": 0.3}, environment=False)

    assert settings.api_key == "from-file"
    assert settings.model == Settings().model
    assert settings.temperature == pytest.approx(0.3)


def test_invalid_numeric_environment_values_are_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHATSTUDIO_MAX_TOKENS", "lots")
    monkeypatch.setenv("CHATSTUDIO_REQUEST_TIMEOUT", "soon")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings.max_tokens == Settings().max_tokens
    assert settings.request_timeout is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [("", ""), ("abc", "***"), ("sk-123456", "sk*****56")],
)
def test_redact_secret(value: str, expected: str) -> None:
    assert redact_secret(value) == expected


def test_non_object_document_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert SettingsStore(path).load() == Settings()


def test_with_overrides_skips_unknown_fields() -> None:
    settings = Settings(model="a")

    assert settings.with_overrides({"theme": "dark"}) is settings
    assert settings.with_overrides({"model": "b", "service": " Azure "}).service == "azure"
