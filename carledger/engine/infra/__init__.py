"""Infrastructure helpers for carledger (paths and settings)."""

from .paths import DEFAULT_DATA_ROOT, DEFAULT_DB_PATH, DEFAULT_LOG_ROOT, ensure_parent
from .settings import DEFAULT_RECIPIENT, Settings, SettingsError, load_settings

__all__ = [
    "DEFAULT_DATA_ROOT",
    "DEFAULT_DB_PATH",
    "DEFAULT_LOG_ROOT",
    "DEFAULT_RECIPIENT",
    "Settings",
    "SettingsError",
    "ensure_parent",
    "load_settings",
]
