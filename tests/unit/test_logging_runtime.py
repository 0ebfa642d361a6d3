from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from carledger.engine import logging as runtime_logging
from carledger.engine.logging import configure_cli_logging, record_metrics, setup_logger


@pytest.fixture(autouse=True)
def isolate_logging(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Reset logging handlers and run in a temporary working directory."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(runtime_logging.JSON_ENV_FLAG, "0")
    root = logging.getLogger()
    root.handlers = []
    root.setLevel(logging.NOTSET)
    yield
    for logger in list(logging.Logger.manager.loggerDict.values()):
        if isinstance(logger, logging.Logger) and logger.name.startswith("carledger"):
            logger.handlers = []
            logger.setLevel(logging.NOTSET)
    root.handlers = []
    root.setLevel(logging.NOTSET)


def test_setup_logger_resolves_level_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """The helper must honour CARLEDGER_LOG_LEVEL when configuring loggers."""

    monkeypatch.setenv(runtime_logging.LEVEL_ENV_FLAG, "DEBUG")
    logger = setup_logger("carledger.tests.level")

    assert logger.isEnabledFor(logging.DEBUG)
    console_handlers = [h for h in logger.handlers if getattr(h, "_carledger_console", False)]
    assert len(console_handlers) == 1
    assert console_handlers[0].formatter._fmt == runtime_logging.CONSOLE_FORMAT


def test_setup_logger_is_idempotent() -> None:
    logger = setup_logger("carledger.tests.twice")
    setup_logger("carledger.tests.twice")
    assert len([h for h in logger.handlers if getattr(h, "_carledger_console", False)]) == 1


def test_unknown_level_name_falls_back_to_info(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(runtime_logging.LEVEL_ENV_FLAG, "LOUD")
    logger = setup_logger("carledger.tests.loud")
    assert logger.level == logging.INFO


def test_explicit_level_applies_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(runtime_logging.LEVEL_ENV_FLAG, raising=False)
    logger = setup_logger("carledger.tests.explicit", level="warning")
    assert logger.level == logging.WARNING
    setup_logger("carledger.tests.explicit", level=logging.DEBUG)
    handlers = [h for h in logger.handlers if getattr(h, "_carledger_console", False)]
    assert [h.level for h in handlers] == [logging.DEBUG]


def test_setup_logger_emits_json_payload() -> None:
    """When json_format=True the audit file must contain structured entries."""

    logger = setup_logger("carledger.tests.json", json_format=True)
    logger.info(
        "Email sent for: Oil change",
        extra={"reminder_id": 4, "notification_type": "upcoming", "days_until_due": 3},
    )
    for handler in logger.handlers:
        handler.flush()

    payloads = [
        json.loads(line)
        for line in runtime_logging.LOG_PATH.read_text(encoding="utf-8").splitlines()
        if line
    ]
    assert payloads, "expected at least one JSON log line"
    record = payloads[0]
    assert record["message"] == "Email sent for: Oil change"
    assert record["reminder_id"] == 4
    assert record["notification_type"] == "upcoming"
    assert record["days_until_due"] == 3


def test_record_metrics_appends_jsonl() -> None:
    """Metrics helper must append JSON lines with tags."""

    record_metrics("notifications_sent", 2, {"recipient": "admin@example.com"})
    record_metrics("notifications_failed", 1)
    lines = [
        json.loads(line)
        for line in runtime_logging.METRICS_PATH.read_text(encoding="utf-8").splitlines()
        if line
    ]
    assert [line["metric"] for line in lines] == ["notifications_sent", "notifications_failed"]
    assert lines[0]["value"] == pytest.approx(2.0)
    assert lines[0]["tags"] == {"recipient": "admin@example.com"}
    assert lines[1]["tags"] == {}


def test_configure_cli_logging_updates_existing_loggers() -> None:
    """Existing carledger loggers should gain JSON handlers when requested."""

    first = setup_logger("carledger.engine.sample")
    assert not any(getattr(h, "_carledger_json", False) for h in first.handlers)

    configure_cli_logging(json_logs=True)
    assert any(getattr(h, "_carledger_json", False) for h in first.handlers)
