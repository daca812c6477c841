"""Process-private storage for short-lived launcher scripts."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import AsyncIterator

from pwaccounts.batch.writer import sanitize_login, write_script
from pwaccounts.contracts import SCRIPT_EXTENSION

logger = logging.getLogger("pwaccounts.supervisor.temp_scripts")

SCRIPT_GRACE_SECONDS = 5.0


class TempScriptStore:
    """Scoped acquisition of temp scripts with release on a fixed delay.

    A script written through ``handoff`` is scheduled for deletion
    ``grace_seconds`` after the block exits, whether or not the spawn inside
    it succeeded. Deletion failures are logged, never raised.
    """

    def __init__(self, base_dir: Path | None = None, *, grace_seconds: float = SCRIPT_GRACE_SECONDS):
        self._owns_dir = base_dir is None
        self.base_dir = Path(base_dir) if base_dir else Path(tempfile.mkdtemp(prefix="pwaccounts-"))
        self.grace_seconds = grace_seconds
        self._pending: dict[Path, asyncio.Task] = {}

    @property
    def pending_paths(self) -> list[Path]:
        return list(self._pending)

    def acquire(self, login: str, text: str) -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        name = f"{sanitize_login(login)}_{time.time_ns()}{SCRIPT_EXTENSION}"
        return write_script(self.base_dir / name, text)

    def release(self, path: Path) -> bool:
        """Delete a script now; returns False when deletion failed."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete temp script %s: %s", path, exc)
            return False
        logger.debug("Deleted temp script %s", path)
        return True

    def release_later(self, path: Path) -> None:
        async def _release_after_grace() -> None:
            try:
                await asyncio.sleep(self.grace_seconds)
                self.release(path)
            finally:
                self._pending.pop(path, None)

        self._pending[path] = asyncio.create_task(_release_after_grace())

    @contextlib.asynccontextmanager
    async def handoff(self, login: str, text: str) -> AsyncIterator[Path]:
        path = await asyncio.to_thread(self.acquire, login, text)
        try:
            yield path
        finally:
            self.release_later(path)

    async def aclose(self) -> None:
        """Cancel pending delays and delete every outstanding script now."""
        pending = list(self._pending.items())
        for _, task in pending:
            task.cancel()
        for path, task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self.release(path)
        self._pending.clear()
        if self._owns_dir:
            shutil.rmtree(self.base_dir, ignore_errors=True)
