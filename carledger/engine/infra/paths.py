"""Filesystem locations shared by the database, logging and CLI layers."""

from __future__ import annotations

from pathlib import Path
from typing import Final

DEFAULT_DATA_ROOT: Final[Path] = Path("data")
DEFAULT_LOG_ROOT: Final[Path] = DEFAULT_DATA_ROOT / "logs"
DEFAULT_DB_PATH: Final[Path] = DEFAULT_DATA_ROOT / "carledger.db"


def ensure_parent(path: str | Path) -> Path:
    """Create the parent directory of ``path`` and return it as a :class:`Path`."""

    resolved = Path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return resolved


__all__ = ["DEFAULT_DATA_ROOT", "DEFAULT_DB_PATH", "DEFAULT_LOG_ROOT", "ensure_parent"]
