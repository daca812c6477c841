"""SQLite-backed account storage, import and export."""

from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from pwaccounts.supervisor.database import get_db, init_db
from pwaccounts.supervisor.models import Account, PartialAccount

logger = logging.getLogger("pwaccounts.supervisor.account_store")

EXPORT_FORMATS = {"json", "csv"}
EXPORT_FIELDS = ["login", "password", "server", "character_name", "description", "owner"]
_ACCOUNT_COLUMNS = [
    "id",
    "login",
    "password",
    "server",
    "character_name",
    "description",
    "owner",
    "source_script",
]


def _row_to_account(row) -> Account:
    return Account(**{column: row[column] for column in _ACCOUNT_COLUMNS})


def _check_format(fmt: str) -> str:
    normalized = str(fmt or "").strip().lower()
    if normalized not in EXPORT_FORMATS:
        raise ValueError(f"unsupported format: {fmt}")
    return normalized


def render_export(accounts: Iterable[Account], fmt: str) -> str:
    """Serialize accounts for export as a JSON array or CSV with a header row."""
    fmt = _check_format(fmt)
    rows = [account.model_dump(mode="json", include=set(EXPORT_FIELDS)) for account in accounts]
    if fmt == "json":
        return json.dumps(rows, indent=2, ensure_ascii=False)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({key: "" if value is None else value for key, value in row.items()})
    return buffer.getvalue()


def _normalize_import_record(raw: dict[str, Any]) -> PartialAccount:
    fields = dict(raw)
    if "characterName" in fields and "character_name" not in fields:
        fields["character_name"] = fields.pop("characterName")
    values: dict[str, Any] = {}
    for name in ("login", "password", "server", "character_name", "description", "owner"):
        value = fields.get(name)
        if isinstance(value, (int, float)):
            value = str(value)
        elif value is not None and not isinstance(value, str):
            # Nested values cannot be a field; the record is reported incomplete on import.
            value = None
        if isinstance(value, str):
            value = value.strip() or None
        values[name] = value
    return PartialAccount(**values)


def parse_import(text: str, fmt: str) -> list[PartialAccount]:
    """Parse an export file; JSON may be an array, a single object or ``{"accounts": [...]}``."""
    fmt = _check_format(fmt)
    if fmt == "json":
        parsed = json.loads(text)
        if isinstance(parsed, dict) and isinstance(parsed.get("accounts"), list):
            records = parsed["accounts"]
        elif isinstance(parsed, list):
            records = parsed
        else:
            records = [parsed]
    else:
        records = list(csv.DictReader(io.StringIO(text)))
    return [_normalize_import_record(record) for record in records if isinstance(record, dict)]


class AccountStore:
    """Account persistence keyed by account id; logins are unique case-insensitively."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    async def initialize(self) -> None:
        await init_db(self.db_path)

    async def list_accounts(self) -> list[Account]:
        rows = []
        async for db in get_db(self.db_path):
            async with db.execute("SELECT * FROM accounts ORDER BY created_at, login") as cursor:
                rows = await cursor.fetchall()
        return [_row_to_account(row) for row in rows]

    async def get_account(self, account_id: str) -> Account | None:
        row = None
        async for db in get_db(self.db_path):
            async with db.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)) as cursor:
                row = await cursor.fetchone()
        return _row_to_account(row) if row else None

    async def find_by_login(self, login: str) -> Account | None:
        row = None
        async for db in get_db(self.db_path):
            async with db.execute(
                "SELECT * FROM accounts WHERE lower(login) = lower(?)", (login.strip(),)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_account(row) if row else None

    async def save_account(self, account: Account) -> Account:
        """Insert or update by id; raises ValueError when another account owns the login."""
        existing = await self.find_by_login(account.login)
        if existing is not None and existing.id != account.id:
            raise ValueError(f"account with login {account.login!r} already exists")

        now = datetime.utcnow().isoformat()
        async for db in get_db(self.db_path):
            await db.execute(
                """
                INSERT INTO accounts (id, login, password, server, character_name, description,
                                      owner, source_script, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    login = excluded.login,
                    password = excluded.password,
                    server = excluded.server,
                    character_name = excluded.character_name,
                    description = excluded.description,
                    owner = excluded.owner,
                    source_script = excluded.source_script,
                    updated_at = excluded.updated_at
                """,
                (
                    account.id,
                    account.login,
                    account.password,
                    account.server.value,
                    account.character_name,
                    account.description,
                    account.owner,
                    account.source_script,
                    now,
                    now,
                ),
            )
            await db.commit()
        logger.info("Saved account %s (%s)", account.login, account.id)
        return account

    async def delete_account(self, account_id: str) -> bool:
        deleted = False
        async for db in get_db(self.db_path):
            cursor = await db.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            await db.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted account %s", account_id)
        return deleted

    async def import_candidates(self, candidates: Iterable[PartialAccount]) -> dict[str, list]:
        """Persist confirmed candidates, skipping incomplete ones and known logins."""
        saved: list[Account] = []
        skipped: list[str] = []
        errors: list[dict[str, str]] = []
        for candidate in candidates:
            login = (candidate.login or "").strip()
            if not candidate.is_complete():
                errors.append({"login": login or "unknown", "error": "login and password are required"})
                continue
            if await self.find_by_login(login) is not None:
                skipped.append(login)
                continue
            try:
                saved.append(await self.save_account(Account.from_candidate(candidate)))
            except ValueError as exc:
                errors.append({"login": login, "error": str(exc)})
        logger.info(
            "Imported %d account(s), skipped %d existing, %d error(s)",
            len(saved),
            len(skipped),
            len(errors),
        )
        return {"saved": saved, "skipped": skipped, "errors": errors}

    async def export_accounts(self, path: Path, fmt: str, account_ids: list[str] | None = None) -> int:
        accounts = await self.list_accounts()
        if account_ids is not None:
            wanted = set(account_ids)
            accounts = [account for account in accounts if account.id in wanted]
        text = render_export(accounts, fmt)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info("Exported %d account(s) to %s", len(accounts), path)
        return len(accounts)
