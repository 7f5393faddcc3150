"""User options and their JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

from ..utils.file_io import write_text

__all__ = [
    "Settings",
    "SettingsStore",
    "SERVICE_CHOICES",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)

SERVICE_CHOICES: tuple[str, ...] = ("openai", "azure")
_DEFAULT_SETTINGS_PATH = Path.home() / ".chatstudio" / "settings.json"
_SCHEMA_VERSION = 1
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})


def _env_flag(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _env_int(value: str) -> int:
    return int(value, 10)


# Environment variable -> (settings field, converter). Converters raise ValueError on bad input.
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "CHATSTUDIO_API_KEY": ("api_key", str),
    "CHATSTUDIO_BASE_URL": ("base_url", str),
    "CHATSTUDIO_MODEL": ("model", str),
    "CHATSTUDIO_SERVICE": ("service", str),
    "CHATSTUDIO_ORGANIZATION": ("organization", str),
    "CHATSTUDIO_PROXY": ("proxy", str),
    "CHATSTUDIO_AZURE_RESOURCE": ("azure_resource_name", str),
    "CHATSTUDIO_AZURE_DEPLOYMENT": ("azure_deployment_id", str),
    "CHATSTUDIO_AZURE_API_VERSION": ("azure_api_version", str),
    "CHATSTUDIO_DEBUG_LOGGING": ("debug_logging", _env_flag),
    "CHATSTUDIO_SINGLE_RESPONSE": ("single_response", _env_flag),
    "CHATSTUDIO_MINIFY_REQUESTS": ("minify_requests", _env_flag),
    "CHATSTUDIO_TEMPERATURE": ("temperature", float),
    "CHATSTUDIO_REQUEST_TIMEOUT": ("request_timeout", float),
    "CHATSTUDIO_MAX_TOKENS": ("max_tokens", _env_int),
}


@dataclass(slots=True)
class Settings:
    """Options shared by the resolver, the indexer and the chat client.

    ``stop_sequences`` and ``characters_to_remove_from_requests`` are comma
    separated, the way they are typed into an options page. ``commands`` maps
    a command name to the text it expands to; missing names use the
    built-in texts.
    """

    service: str = "openai"
    api_key: str = ""
    base_url: str | None = None
    organization: str | None = None
    proxy: str | None = None
    azure_resource_name: str | None = None
    azure_deployment_id: str | None = None
    azure_api_version: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 2048
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    stop_sequences: str = ""
    minify_requests: bool = False
    characters_to_remove_from_requests: str = ""
    single_response: bool = False
    system_message: str = "You are a programming assistant embedded in a code editor."
    commands: dict[str, str] = field(default_factory=dict)
    request_timeout: float | None = None
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    index_initial_interval: float = 10.0
    index_refresh_interval: float = 120.0
    debug_logging: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Settings":
        """Build settings from a stored document, dropping keys this version does not know."""

        known = {item.name for item in fields(cls)}
        data = {key: value for key, value in payload.items() if key in known}
        if "commands" in data and not isinstance(data["commands"], Mapping):
            LOGGER.debug("Ignoring commands payload of type %s", type(data["commands"]).__name__)
            del data["commands"]
        try:
            settings = cls(**data)
        except TypeError as exc:
            LOGGER.warning("Settings payload contained unexpected data: %s", exc)
            return cls()
        return settings.normalized()

    def normalized(self) -> "Settings":
        service = (self.service or "").strip().lower()
        if service not in SERVICE_CHOICES:
            LOGGER.warning("Unknown service '%s'; defaulting to openai.", self.service)
            service = "openai"
        return self if service == self.service else replace(self, service=service)

    def with_overrides(self, overrides: Mapping[str, Any], *, source: str = "runtime") -> "Settings":
        """Return a copy with ``overrides`` applied; ``None`` values are skipped, commands merge."""

        known = {item.name for item in fields(Settings)}
        changes: Dict[str, Any] = {
            key: value for key, value in overrides.items() if key in known and value is not None
        }
        if isinstance(changes.get("commands"), Mapping):
            changes["commands"] = {**self.commands, **changes["commands"]}
        if not changes:
            return self
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(changes))
        return replace(self, **changes).normalized()


class SettingsStore:
    """Reads and writes :class:`Settings` as a versioned JSON document."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None, environment: bool = True) -> Settings:
        """Load the stored settings, then apply ``overrides`` and finally ``CHATSTUDIO_*`` variables.

        Pass ``environment=False`` to get what should be written back to disk.
        """

        settings = Settings.from_payload(self._read_document())
        if overrides:
            settings = settings.with_overrides(overrides, source="CLI")
        env_overrides = _environment_overrides(os.environ) if environment else {}
        if env_overrides:
            settings = settings.with_overrides(env_overrides, source="environment")
        LOGGER.debug(
            "Settings loaded from %s (service=%s, model=%s, api_key=%s)",
            self._path,
            settings.service,
            settings.model,
            redact_secret(settings.api_key),
        )
        return settings

    def save(self, settings: Settings) -> Path:
        document = {**asdict(settings), "version": _SCHEMA_VERSION}
        write_text(self._path, json.dumps(document, indent=2, sort_keys=True))
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_document(self) -> Mapping[str, Any]:
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(document, Mapping):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return document


def _environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, (field_name, convert) in _ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[field_name] = convert(raw)
        except ValueError:
            LOGGER.warning("Ignoring environment override %s=%r", env_name, raw)
    return overrides


def redact_secret(value: str) -> str:
    """Mask all but the first and last two characters of a secret."""

    secret = (value or "").strip()
    if len(secret) <= 4:
        return "*" * len(secret)
    return secret[:2] + "*" * (len(secret) - 4) + secret[-2:]
