"""Structured logging and metrics helpers for carledger."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from carledger.engine.infra.paths import DEFAULT_LOG_ROOT

CONSOLE_FORMAT: Final[str] = "[%(levelname)s] %(name)s: %(message)s"
DEFAULT_LEVEL: Final[str] = "INFO"
AUDIT_DIR: Final[Path] = DEFAULT_LOG_ROOT
LOG_PATH: Final[Path] = AUDIT_DIR / "carledger.log"
METRICS_PATH: Final[Path] = AUDIT_DIR / "metrics.jsonl"
JSON_ENV_FLAG: Final[str] = "CARLEDGER_JSON_LOGS"
LEVEL_ENV_FLAG: Final[str] = "CARLEDGER_LOG_LEVEL"

# Optional ``extra=`` attributes copied into the JSON payload.
_EXTRA_FIELDS: Final[tuple[str, ...]] = ("reminder_id", "notification_type", "days_until_due")
_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})

# Marker attributes identifying handlers installed by :func:`setup_logger`.
_CONSOLE_TAG: Final[str] = "_carledger_console"
_JSON_TAG: Final[str] = "_carledger_json"


class JsonAuditFormatter(logging.Formatter):
    """Format log records as single-line JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat()
        payload: dict[str, object] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "source": record.name,
            "message": record.getMessage(),
        }
        for name in _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _ensure_audit_dir() -> None:
    """Create the log directory on first use so importing never touches the disk."""

    AUDIT_DIR.mkdir(parents=True, exist_ok=True)


def _resolve_level(level: str | int | None) -> int:
    """Pick the log level from ``CARLEDGER_LOG_LEVEL``, then the caller, then INFO.

    Unknown level names fall back to INFO rather than failing the caller.
    """

    raw = os.environ.get(LEVEL_ENV_FLAG) or level
    if isinstance(raw, int):
        return raw
    name = (raw or DEFAULT_LEVEL).strip().upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _json_logging_enabled(explicit: bool) -> bool:
    """Return ``True`` when JSON output is requested by argument or environment."""

    flag = os.environ.get(JSON_ENV_FLAG, "")
    return explicit or flag.strip().lower() in _TRUTHY


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    return handler


def _json_handler() -> logging.Handler:
    _ensure_audit_dir()
    handler = logging.FileHandler(LOG_PATH, encoding="utf-8")
    handler.setFormatter(JsonAuditFormatter())
    return handler


def _attach_once(
    logger: logging.Logger,
    tag: str,
    factory: Callable[[], logging.Handler],
    level: int,
) -> None:
    """Attach the handler built by ``factory`` unless one carrying ``tag`` exists.

    Handlers are marked with a private attribute so repeated ``setup_logger``
    calls only refresh the level instead of duplicating output.
    """

    for handler in logger.handlers:
        if getattr(handler, tag, False):
            handler.setLevel(level)
            return
    handler = factory()
    handler.setLevel(level)
    setattr(handler, tag, True)
    logger.addHandler(handler)


def setup_logger(
    name: str,
    json_format: bool = False,
    level: str | int | None = None,
) -> logging.Logger:
    """Configure and return a logger for carledger modules."""

    resolved_level = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(resolved_level)
    # Keep propagating so capture handlers (pytest ``caplog``) still see records.
    logger.propagate = True
    _attach_once(logger, _CONSOLE_TAG, _console_handler, resolved_level)
    if _json_logging_enabled(json_format):
        _attach_once(logger, _JSON_TAG, _json_handler, resolved_level)
    return logger


def record_metrics(metric_name: str, value: float, tags: Mapping[str, str] | None = None) -> None:
    """Append a metric observation to the metrics audit log."""

    _ensure_audit_dir()
    payload = {
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "metric": metric_name,
        "value": float(value),
        "tags": dict(tags or {}),
    }
    with METRICS_PATH.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False) + "\n")


def configure_cli_logging(json_logs: bool, level: str | int | None = None) -> None:
    """Reconfigure every existing carledger logger for a CLI run."""

    if json_logs:
        os.environ[JSON_ENV_FLAG] = "1"
    else:
        os.environ.pop(JSON_ENV_FLAG, None)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not isinstance(logger, logging.Logger):
            continue
        if not name.startswith("carledger"):
            continue
        setup_logger(name, json_format=json_logs, level=level)
    setup_logger("carledger", json_format=json_logs, level=level)


__all__ = ["configure_cli_logging", "record_metrics", "setup_logger"]
