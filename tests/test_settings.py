"""Tests for settings loading."""

from __future__ import annotations

import json
from pathlib import Path

from agentloop.settings import Settings, load_settings, redact_secret, save_settings


def test_defaults_without_file_or_environment() -> None:
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.max_tool_rounds == 10
    assert settings.max_argument_bytes == 1024 * 1024


def test_file_then_environment_then_overrides(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"model": "from-file", "max_tool_rounds": 4, "temperature": 0.5}), encoding="utf-8")
    environ = {"AGENTLOOP_MODEL": "from-env", "AGENTLOOP_MAX_TOOL_ROUNDS": "6"}

    settings = load_settings(path, environ=environ, overrides={"max_tool_rounds": 8, "model": None})

    assert settings.model == "from-env"
    assert settings.max_tool_rounds == 8
    assert settings.temperature == 0.5


def test_environment_types_are_parsed() -> None:
    environ = {
        "AGENTLOOP_STRICT_TOOLS": "yes",
        "AGENTLOOP_TOOL_TIMEOUT": "2.5",
        "AGENTLOOP_MAX_ARGUMENT_BYTES": "2048",
        "AGENTLOOP_CLIENT_TOOLS": "confirm, pick_file ,",
    }

    settings = load_settings(environ=environ)

    assert settings.strict_tools is True
    assert settings.tool_timeout == 2.5
    assert settings.max_argument_bytes == 2048
    assert settings.client_tool_names == ["confirm", "pick_file"]


def test_invalid_numbers_are_ignored() -> None:
    settings = load_settings(environ={"AGENTLOOP_MAX_RETRIES": "many", "AGENTLOOP_TEMPERATURE": "hot"})

    assert settings.max_retries == 3
    assert settings.temperature == 0.2


def test_unknown_and_invalid_files_fall_back(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    extra = tmp_path / "extra.json"
    extra.write_text(json.dumps({"model": "m", "unknown_key": 1}), encoding="utf-8")

    assert load_settings(broken, environ={}) == Settings()
    assert load_settings(extra, environ={}).model == "m"
    assert load_settings(tmp_path / "missing.json", environ={}) == Settings()


def test_header_overrides_merge() -> None:
    settings = load_settings(environ={}, overrides={"default_headers": {"X-Trace": "1"}})

    assert settings.default_headers == {"X-Trace": "1"}


def test_save_omits_api_key(tmp_path: Path) -> None:
    target = save_settings(Settings(api_key="sk-secret", model="saved"), tmp_path / "nested" / "settings.json")

    data = json.loads(target.read_text(encoding="utf-8"))
    assert "api_key" not in data
    assert load_settings(target, environ={}).model == "saved"


def test_projections() -> None:
    settings = Settings(
        api_key="sk-test",
        max_tool_rounds=3,
        client_tool_names=["confirm"],
        tool_timeout=0,
        strict_tools=True,
    )

    run_config = settings.to_run_config()
    assert run_config.max_tool_rounds == 3
    assert run_config.client_tool_names == frozenset({"confirm"})
    assert settings.to_executor_config().default_timeout is None
    client = settings.to_client_settings()
    assert client.api_key == "sk-test"
    assert client.strict_tools is True
    assert client.default_headers is None


def test_redact_secret() -> None:
    assert redact_secret("") == ""
    assert redact_secret("abc") == "***"
    assert redact_secret("sk-123456") == "sk*****56"


def test_patch_and_history_settings_reach_their_configs() -> None:
    environ = {
        "AGENTLOOP_EMIT_PATCHES": "off",
        "AGENTLOOP_MAX_OPEN_HISTORIES": "8",
        "AGENTLOOP_LOG_DIR": "/var/log/agentloop",
    }

    settings = load_settings(environ=environ)

    assert settings.emit_patches is False
    assert settings.max_open_histories == 8
    assert settings.log_dir == "/var/log/agentloop"
    assert settings.to_run_config().emit_patches is False
    assert settings.to_client_settings().max_open_histories == 8
    assert Settings().to_run_config().emit_patches is True
