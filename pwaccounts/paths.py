"""Per-user locations for settings, data and logs."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir, user_log_dir

APP_NAME = "pwaccounts"
HOME_ENV_VAR = "PWACCOUNTS_HOME"


def _override_root() -> Path | None:
    value = os.environ.get(HOME_ENV_VAR, "").strip()
    return Path(value) if value else None


def config_dir() -> Path:
    root = _override_root()
    return root if root else Path(user_config_dir(APP_NAME, appauthor=False))


def data_dir() -> Path:
    root = _override_root()
    return root if root else Path(user_data_dir(APP_NAME, appauthor=False))


def log_dir() -> Path:
    root = _override_root()
    return root / "logs" if root else Path(user_log_dir(APP_NAME, appauthor=False))


def settings_path() -> Path:
    return config_dir() / "settings.json"


def database_path() -> Path:
    return data_dir() / "accounts.db"


def pid_file_path() -> Path:
    return data_dir() / "server.pid"
