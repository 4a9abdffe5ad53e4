"""Settings dataclass and loading helpers.

Settings are resolved in layers: dataclass defaults, then an optional JSON
file, then ``AGENTLOOP_*`` environment variables, then runtime overrides.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from .controller import RunConfig
from .tools import ExecutorConfig
from .transport import ClientSettings
from .types import DEFAULT_MAX_TOOL_ROUNDS, MAX_ARGUMENT_BYTES

__all__ = [
    "Settings",
    "load_settings",
    "save_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTLOOP_API_KEY": "api_key",
    "AGENTLOOP_BASE_URL": "base_url",
    "AGENTLOOP_MODEL": "model",
    "AGENTLOOP_ORGANIZATION": "organization",
    "AGENTLOOP_SYSTEM_PROMPT": "system_prompt",
    "AGENTLOOP_LOG_DIR": "log_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTLOOP_DEBUG_LOGGING": "debug_logging",
    "AGENTLOOP_STRICT_TOOLS": "strict_tools",
    "AGENTLOOP_EMIT_PATCHES": "emit_patches",
    "AGENTLOOP_LOG_TOOL_ARGUMENTS": "log_tool_arguments",
    "AGENTLOOP_LOG_TOOL_RESULTS": "log_tool_results",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTLOOP_REQUEST_TIMEOUT": "request_timeout",
    "AGENTLOOP_TEMPERATURE": "temperature",
    "AGENTLOOP_TOOL_TIMEOUT": "tool_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTLOOP_MAX_RETRIES": "max_retries",
    "AGENTLOOP_MAX_TOOL_ROUNDS": "max_tool_rounds",
    "AGENTLOOP_MAX_ARGUMENT_BYTES": "max_argument_bytes",
    "AGENTLOOP_MAX_OPEN_HISTORIES": "max_open_histories",
}
_LIST_ENV_OVERRIDES: Mapping[str, str] = {
    "AGENTLOOP_CLIENT_TOOLS": "client_tool_names",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """Configuration for the model endpoint and the run loop."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    temperature: float = 0.2
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    system_prompt: str | None = None
    strict_tools: bool = False
    max_open_histories: int = 64
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS
    max_argument_bytes: int = MAX_ARGUMENT_BYTES
    client_tool_names: list[str] = field(default_factory=list)
    emit_patches: bool = True
    tool_timeout: float = 30.0
    log_tool_arguments: bool = False
    log_tool_results: bool = False
    debug_logging: bool = False
    log_dir: str | None = None

    def to_run_config(self) -> RunConfig:
        return RunConfig(
            max_tool_rounds=self.max_tool_rounds,
            max_argument_bytes=self.max_argument_bytes,
            client_tool_names=frozenset(self.client_tool_names),
            emit_patches=self.emit_patches,
        )

    def to_executor_config(self) -> ExecutorConfig:
        return ExecutorConfig(
            default_timeout=self.tool_timeout if self.tool_timeout > 0 else None,
            log_arguments=self.log_tool_arguments,
            log_results=self.log_tool_results,
        )

    def to_client_settings(self) -> ClientSettings:
        return ClientSettings(
            base_url=self.base_url,
            api_key=self.api_key,
            model=self.model,
            organization=self.organization,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            retry_min_seconds=self.retry_min_seconds,
            retry_max_seconds=self.retry_max_seconds,
            default_headers=dict(self.default_headers) or None,
            temperature=self.temperature,
            system_prompt=self.system_prompt,
            strict_tools=self.strict_tools,
            max_open_histories=self.max_open_histories,
            debug_logging=self.debug_logging,
        )


def load_settings(
    path: Path | str | None = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from an optional JSON file, the environment and overrides.

    Args:
        path: JSON file to read. Missing files are treated as empty.
        overrides: Runtime values applied last; ``None`` values are skipped.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        The resolved settings.
    """
    settings = Settings()
    if path is not None:
        payload = _read_payload(Path(path))
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()

    settings = _apply_env_overrides(settings, os.environ if environ is None else environ)
    if overrides:
        settings = _apply_overrides(settings, overrides, source="runtime")
    LOGGER.debug(
        "Settings resolved: model=%s base_url=%s api_key=%s",
        settings.model,
        settings.base_url,
        redact_secret(settings.api_key),
    )
    return settings


def save_settings(settings: Settings, path: Path | str) -> Path:
    """Persist settings as JSON with an atomic replace. The API key is not written."""
    target = Path(path)
    data = asdict(settings)
    data.pop("api_key", None)
    body = json.dumps(data, indent=2, sort_keys=True)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(".tmp")
    tmp_path.write_text(body, encoding="utf-8")
    tmp_path.replace(target)
    LOGGER.debug("Settings saved to %s", target)
    return target


def _read_payload(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as exc:
        LOGGER.warning("Settings file %s is not valid JSON: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        LOGGER.warning("Settings file %s does not contain a JSON object", path)
        return {}
    return payload


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if key not in allowed:
            LOGGER.debug("Ignoring unknown settings key %s", key)
            continue
        result[key] = value
    return result


def _apply_overrides(
    settings: Settings,
    overrides: Mapping[str, Any],
    *,
    source: str = "runtime",
) -> Settings:
    allowed = {field.name for field in fields(Settings)}
    filtered: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed or value is None:
            continue
        filtered[key] = value
    headers_override = filtered.get("default_headers")
    if isinstance(headers_override, Mapping):
        merged_headers = dict(settings.default_headers or {})
        merged_headers.update(headers_override)
        filtered["default_headers"] = merged_headers
    if filtered:
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        settings = replace(settings, **filtered)
    return settings


def _apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None:
            overrides[field_name] = value
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    for env_name, field_name in _INT_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = int(value, 10)
        except ValueError:
            LOGGER.warning(
                "Environment override %s=%s is not a valid integer",
                env_name,
                value,
            )
    for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None:
            continue
        try:
            overrides[field_name] = float(value)
        except ValueError:
            LOGGER.warning(
                "Environment override %s=%s is not a valid float", env_name, value
            )
    for env_name, field_name in _LIST_ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is not None:
            overrides[field_name] = [item.strip() for item in value.split(",") if item.strip()]
    if overrides:
        settings = _apply_overrides(settings, overrides, source="environment")
    return settings


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
