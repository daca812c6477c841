"""On-disk launcher script files."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from pwaccounts.batch.codec import encode_script, render_script, validate_script_format
from pwaccounts.batch.locator import require_executable
from pwaccounts.contracts import SCRIPT_EXTENSION
from pwaccounts.supervisor.models import Account

logger = logging.getLogger("pwaccounts.batch.writer")

PERMANENT_SCRIPT_PREFIX = "pw_"
_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_PERMANENT_SCRIPT_NAME = re.compile(
    rf"^{PERMANENT_SCRIPT_PREFIX}(.+){re.escape(SCRIPT_EXTENSION)}$", re.IGNORECASE
)


def sanitize_login(login: str) -> str:
    """Make a login safe for use inside a Windows filename."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", login)
    cleaned = re.sub(r"\s+", "_", cleaned)
    return cleaned or "account"


def permanent_script_name(login: str) -> str:
    return f"{PERMANENT_SCRIPT_PREFIX}{sanitize_login(login)}{SCRIPT_EXTENSION}"


def write_script(path: str | os.PathLike, text: str) -> Path:
    script_path = Path(path)
    script_path.parent.mkdir(parents=True, exist_ok=True)
    script_path.write_bytes(encode_script(text))
    return script_path


def create_permanent_script(
    account: Account,
    root_dir: str | os.PathLike | None,
    *,
    embed_character_name: bool = False,
) -> Path:
    """Write a reusable ``pw_<login>.bat`` beside the game executable."""
    executable = require_executable(root_dir)
    text = render_script(account, executable, embed_character_name=embed_character_name)
    validate_script_format(text)
    script_path = write_script(executable.parent / permanent_script_name(account.login), text)
    logger.info("Wrote permanent launcher script for %s: %s", account.login, script_path)
    return script_path


def cleanup_orphan_scripts(directory: str | os.PathLike, valid_logins: set[str]) -> list[Path]:
    """Remove ``pw_<login>.bat`` files whose login is no longer stored."""
    valid_names = {sanitize_login(login).lower() for login in valid_logins}
    removed: list[Path] = []
    try:
        names = os.listdir(directory)
    except OSError as exc:
        logger.warning("Failed to list scripts in %s: %s", directory, exc)
        return removed

    for name in sorted(names):
        match = _PERMANENT_SCRIPT_NAME.match(name)
        if not match or match.group(1).lower() in valid_names:
            continue
        path = Path(directory) / name
        try:
            path.unlink()
        except OSError as exc:
            logger.warning("Failed to remove orphaned script %s: %s", path, exc)
            continue
        logger.info("Cleaned up orphaned launcher script: %s", name)
        removed.append(path)
    return removed
