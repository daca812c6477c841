"""Database initialization and connection helpers for the account store."""

import logging
from pathlib import Path
from typing import Optional

import aiosqlite

from pwaccounts.paths import database_path

logger = logging.getLogger("pwaccounts.supervisor.database")


async def get_db_path(path: Optional[Path] = None) -> Path:
    """Ensure the directory exists and return the DB path."""
    db_path = path or database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


async def init_db(path: Optional[Path] = None):
    """Initialize the database with required tables."""
    db_path = await get_db_path(path)
    logger.info("Initializing account database at %s", db_path)
    async with aiosqlite.connect(db_path) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                login TEXT NOT NULL UNIQUE,
                password TEXT NOT NULL,
                server TEXT NOT NULL,
                character_name TEXT,
                description TEXT,
                owner TEXT,
                source_script TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await db.commit()


async def get_db(path: Optional[Path] = None):
    """Yield one connection with row access by column name."""
    db_path = await get_db_path(path)
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        yield db
