"""Persistent launcher settings helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pwaccounts.contracts import SETTINGS_SCHEMA_V1
from pwaccounts.paths import settings_path

logger = logging.getLogger("pwaccounts.supervisor.settings_config")

MIN_SECONDS = 1
MAX_SECONDS = 300


def default_settings() -> dict[str, Any]:
    return {
        "schema_version": SETTINGS_SCHEMA_V1,
        "game_path": "",
        "launch_delay_seconds": 15,
        "poll_interval_seconds": 5,
        "auto_restart": False,
        "embed_character_name": False,
    }


def _bounded_seconds(settings: dict[str, Any], key: str, default: int) -> int:
    raw = settings.get(key, default)
    if isinstance(raw, bool):
        raise ValueError(f"{key} must be a number")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number") from exc
    if value < MIN_SECONDS or value > MAX_SECONDS:
        raise ValueError(f"{key} must be between {MIN_SECONDS} and {MAX_SECONDS}")
    return value


def _flag(settings: dict[str, Any], key: str) -> bool:
    value = settings.get(key, False)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def validate_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """Validate settings and return the normalized copy."""
    if not isinstance(settings, dict):
        raise ValueError("settings must be object")
    schema_version = settings.get("schema_version", SETTINGS_SCHEMA_V1)
    if schema_version != SETTINGS_SCHEMA_V1:
        raise ValueError("unsupported settings schema_version")
    game_path = settings.get("game_path") or ""
    if not isinstance(game_path, str):
        raise ValueError("game_path must be a string")
    defaults = default_settings()
    return {
        "schema_version": SETTINGS_SCHEMA_V1,
        "game_path": game_path.strip(),
        "launch_delay_seconds": _bounded_seconds(
            settings, "launch_delay_seconds", defaults["launch_delay_seconds"]
        ),
        "poll_interval_seconds": _bounded_seconds(
            settings, "poll_interval_seconds", defaults["poll_interval_seconds"]
        ),
        "auto_restart": _flag(settings, "auto_restart"),
        "embed_character_name": _flag(settings, "embed_character_name"),
    }


def load_settings(path: Path | None = None) -> dict[str, Any]:
    """Load settings from disk or return defaults."""
    path = path or settings_path()
    if not path.exists():
        return default_settings()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return default_settings()
    try:
        return validate_settings(raw)
    except ValueError as exc:
        logger.warning("Ignoring invalid settings file %s: %s", path, exc)
        return default_settings()


def save_settings(settings: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    """Validate and persist settings to disk."""
    path = path or settings_path()
    validated = validate_settings(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated, indent=2), encoding="utf-8")
    return validated
