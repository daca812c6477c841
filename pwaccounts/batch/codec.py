"""Launcher script rendering and parsing."""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime
from pathlib import Path

from pwaccounts.contracts import COMMENT_MARKER, GAME_TOKEN, LAUNCH_MODE_TOKEN
from pwaccounts.supervisor.models import Account, PartialAccount, normalize_server

logger = logging.getLogger("pwaccounts.batch.codec")

LINE_ENDING = "\r\n"
UTF8_BOM = b"\xef\xbb\xbf"

REQUIRED_SCRIPT_ELEMENTS = (
    "@echo off",
    "chcp 65001",
    "cd /d",
    'start ""',
    LAUNCH_MODE_TOKEN,
    GAME_TOKEN,
    "user:",
    "pwd:",
    "role:",
    "exit",
)


def _inline_token(key: str, *, allow_empty: bool = False) -> re.Pattern[str]:
    value = r"(\S*)" if allow_empty else r"(\S+)"
    return re.compile(rf"(?<!\S){key}:{value}", re.IGNORECASE)


def _comment(label: str) -> re.Pattern[str]:
    return re.compile(
        rf"^[ \t]*{COMMENT_MARKER}[ \t]+{label}:[ \t]*(.+?)[ \t]*$",
        re.IGNORECASE | re.MULTILINE,
    )


_USER = _inline_token("user")
_PWD = _inline_token("pwd")
_SERVER = _inline_token("server")
_ROLE = _inline_token("role", allow_empty=True)

_ACCOUNT_COMMENT = _comment("Account")
_SERVER_COMMENT = _comment("Server")
_DESCRIPTION_COMMENT = _comment("Description")
_OWNER_COMMENT = _comment("Owner")
_CHARACTER_COMMENT = _comment("Character")


def build_launch_parameters(account: Account, *, embed_character_name: bool = False) -> list[str]:
    """Return the ordered client command-line parameters for an account."""
    role = ""
    if embed_character_name and account.character_name and account.character_name.strip():
        role = account.character_name.strip()
    params = [
        LAUNCH_MODE_TOKEN,
        GAME_TOKEN,
        f"user:{account.login}",
        f"pwd:{account.password}",
        f"role:{role}",
    ]
    if account.server:
        params.append(f"server:{account.server.value}")
    return params


def render_script(
    account: Account,
    executable_path: str | os.PathLike,
    *,
    embed_character_name: bool = False,
    generated_at: datetime | None = None,
) -> str:
    """Render launcher script text for an account and resolved executable."""
    executable = Path(executable_path)
    timestamp = (generated_at or datetime.now()).isoformat(timespec="seconds")
    params = build_launch_parameters(account, embed_character_name=embed_character_name)
    lines = [
        "@echo off",
        "chcp 65001 >nul 2>&1",
        f"{COMMENT_MARKER} Account: {account.login}",
        f"{COMMENT_MARKER} Server: {account.server.value}",
        f"{COMMENT_MARKER} Generated: {timestamp}",
        "",
        f'cd /d "{executable.parent}"',
        f'start "" "{executable.name}" {" ".join(params)}',
        "exit",
    ]
    return LINE_ENDING.join(lines) + LINE_ENDING


def encode_script(text: str) -> bytes:
    """Encode script text as UTF-8 with BOM, matching the chcp 65001 header."""
    return UTF8_BOM + text.encode("utf-8")


def validate_script_format(text: str) -> bool:
    missing = [element for element in REQUIRED_SCRIPT_ELEMENTS if element not in text]
    if missing:
        logger.warning("Rendered script is missing elements: %s", ", ".join(missing))
        return False
    return True


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if not match:
        return None
    return match.group(1)


def _first_comment(pattern: re.Pattern[str], text: str) -> str | None:
    value = _first(pattern, text)
    if value is None:
        return None
    return value.strip() or None


def parse_script(text: str) -> PartialAccount:
    """Extract a partial account from launcher script text."""
    login = _first(_USER, text) or _first_comment(_ACCOUNT_COMMENT, text)
    password = _first(_PWD, text)

    server_raw = _first(_SERVER, text)
    if server_raw is None:
        server_raw = _first_comment(_SERVER_COMMENT, text)

    character_name = _first(_ROLE, text) or _first_comment(_CHARACTER_COMMENT, text)

    return PartialAccount(
        login=login,
        password=password,
        server=normalize_server(server_raw),
        character_name=character_name,
        description=_first_comment(_DESCRIPTION_COMMENT, text),
        owner=_first_comment(_OWNER_COMMENT, text),
    )
