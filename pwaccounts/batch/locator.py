"""Game client executable discovery inside an installation folder."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from pwaccounts.contracts import (
    EXECUTABLE_NAMES,
    EXECUTABLE_SUBDIR,
    EXECUTABLE_SUFFIX,
    EXECUTABLE_TOKEN,
)
from pwaccounts.errors import ExecutableNotFoundError, InvalidRootDirectoryError

logger = logging.getLogger("pwaccounts.batch.locator")


def is_executable_name(name: str) -> bool:
    """Return True when a directory entry name looks like the game client."""
    lower = name.lower()
    if lower in EXECUTABLE_NAMES:
        return True
    return EXECUTABLE_TOKEN in lower and lower.endswith(EXECUTABLE_SUFFIX)


def candidate_directories(root_dir: str | os.PathLike) -> list[Path]:
    root = Path(root_dir)
    return [root, root / EXECUTABLE_SUBDIR]


def locate_executable(root_dir: str | os.PathLike) -> Path | None:
    """Return the client executable path, or None when nothing matches."""
    for directory in candidate_directories(root_dir):
        try:
            names = sorted(os.listdir(directory))
        except OSError as exc:
            logger.debug("Skipping unreadable candidate directory %s: %s", directory, exc)
            continue
        for name in names:
            if not is_executable_name(name):
                continue
            full_path = directory / name
            try:
                mode = os.stat(full_path).st_mode
            except OSError as exc:
                logger.debug("Cannot stat executable candidate %s: %s", full_path, exc)
                continue
            if stat.S_ISREG(mode):
                logger.debug("Located game client executable: %s", full_path)
                return full_path
    return None


def require_executable(root_dir: str | os.PathLike | None) -> Path:
    """Locate the executable or raise a configuration error for the caller."""
    if not root_dir or not str(root_dir).strip():
        raise InvalidRootDirectoryError(str(root_dir or ""))
    if not Path(root_dir).is_dir():
        raise InvalidRootDirectoryError(str(root_dir))
    executable = locate_executable(root_dir)
    if executable is None:
        raise ExecutableNotFoundError(str(root_dir))
    return executable


def validate_game_folder(root_dir: str | os.PathLike | None) -> bool:
    if not root_dir:
        return False
    return locate_executable(root_dir) is not None
