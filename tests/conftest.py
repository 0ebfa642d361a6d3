"""Shared pytest configuration for the carledger engine and CLI tests."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable
from pathlib import Path

import pytest


def _insert_repo_root() -> None:
    """Make sure the repository root is importable."""

    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_insert_repo_root()

# The backend builds its engine at import time; keep it in memory for tests.
os.environ.setdefault("CARLEDGER_DATABASE_URL", "sqlite://")


def pytest_report_header(config: pytest.Config) -> Iterable[str]:  # pragma: no cover - pytest hook
    root = Path.cwd()
    log_level = os.environ.get("CARLEDGER_LOG_LEVEL", "INFO")
    return [f"carledger repo: {root}", f"CARLEDGER_LOG_LEVEL={log_level}"]


@pytest.fixture(autouse=True)
def _set_verbose_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Default every test to INFO logging."""

    monkeypatch.setenv("CARLEDGER_LOG_LEVEL", "INFO")
