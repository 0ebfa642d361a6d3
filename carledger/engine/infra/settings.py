"""Runtime configuration for carledger.

Settings are resolved in three layers: built-in defaults, an optional YAML
file pointed to by ``CARLEDGER_CONFIG`` and finally ``CARLEDGER_*``
environment variables, which always win. The YAML file uses the same keys as
the :class:`Settings` fields::

    reminder_recipient: me@example.com
    smtp:
      host: smtp.example.com
      port: 587
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Final

import yaml

from .paths import DEFAULT_DB_PATH

CONFIG_ENV_FLAG: Final[str] = "CARLEDGER_CONFIG"
DEFAULT_RECIPIENT: Final[str] = "admin@example.com"

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


class SettingsError(ValueError):
    """Raised when the configuration file or an environment value is invalid."""


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for the API, the notifier and the scheduler."""

    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    reminder_recipient: str = DEFAULT_RECIPIENT
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "carledger@localhost"
    smtp_starttls: bool = True
    notify_days: int = 7
    schedule_hour: int = 8
    schedule_minute: int = 0

    @property
    def mail_enabled(self) -> bool:
        return bool(self.smtp_host)


# Environment variable -> Settings field
_ENV_FIELDS: Final[dict[str, str]] = {
    "CARLEDGER_DATABASE_URL": "database_url",
    "CARLEDGER_REMINDER_RECIPIENT": "reminder_recipient",
    "CARLEDGER_SMTP_HOST": "smtp_host",
    "CARLEDGER_SMTP_PORT": "smtp_port",
    "CARLEDGER_SMTP_USER": "smtp_user",
    "CARLEDGER_SMTP_PASSWORD": "smtp_password",
    "CARLEDGER_SMTP_SENDER": "smtp_sender",
    "CARLEDGER_SMTP_STARTTLS": "smtp_starttls",
    "CARLEDGER_NOTIFY_DAYS": "notify_days",
    "CARLEDGER_SCHEDULE_HOUR": "schedule_hour",
    "CARLEDGER_SCHEDULE_MINUTE": "schedule_minute",
}


def _coerce(name: str, raw: Any) -> Any:
    """Convert ``raw`` to the type declared by the :class:`Settings` field."""

    default = getattr(Settings(), name)
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        return str(raw).strip().lower() in _TRUE_VALUES
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError) as exc:
            raise SettingsError(f"{name} must be an integer, got {raw!r}") from exc
    if raw is None:
        return None
    return str(raw)


def _flatten(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten nested sections such as ``smtp: {host: ...}`` into ``smtp_host``."""

    flat: dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, Mapping):
            for sub_key, sub_value in value.items():
                flat[f"{key}_{sub_key}"] = sub_value
        else:
            flat[str(key)] = value
    return flat


def load_yaml_overrides(path: str | Path) -> dict[str, Any]:
    """Read a YAML configuration file and return the recognised overrides."""

    config_path = Path(path)
    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise SettingsError(f"Unable to read configuration file {config_path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise SettingsError(f"Configuration file {config_path} must contain a mapping")

    known = {field.name for field in fields(Settings)}
    flat = _flatten(payload)
    if "database_path" in flat:
        flat.setdefault("database_url", f"sqlite:///{flat.pop('database_path')}")
    unknown = sorted(set(flat) - known)
    if unknown:
        raise SettingsError(f"Unknown configuration keys: {', '.join(unknown)}")
    return {name: _coerce(name, value) for name, value in flat.items()}


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from defaults, the YAML file and the environment."""

    env = os.environ if environ is None else environ
    settings = Settings()

    config_path = env.get(CONFIG_ENV_FLAG)
    if config_path:
        settings = replace(settings, **load_yaml_overrides(config_path))

    overrides: dict[str, Any] = {}
    db_path = env.get("CARLEDGER_DB_PATH")
    if db_path:
        overrides["database_url"] = f"sqlite:///{db_path}"
    for env_name, field_name in _ENV_FIELDS.items():
        value = env.get(env_name)
        if value is not None and value != "":
            overrides[field_name] = _coerce(field_name, value)
    if overrides:
        settings = replace(settings, **overrides)
    return settings


__all__ = ["DEFAULT_RECIPIENT", "Settings", "SettingsError", "load_settings", "load_yaml_overrides"]
