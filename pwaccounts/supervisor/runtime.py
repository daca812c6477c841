"""Host-owned wiring of store, event sink and process supervisor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from pwaccounts.batch.locator import locate_executable
from pwaccounts.batch.scanner import DirectoryScanner
from pwaccounts.batch.writer import cleanup_orphan_scripts, create_permanent_script
from pwaccounts.errors import UnknownAccountError
from pwaccounts.supervisor.account_store import AccountStore
from pwaccounts.supervisor.events import BroadcastEventSink
from pwaccounts.supervisor.launch_sequencer import LaunchSequencer
from pwaccounts.supervisor.models import LaunchOutcome, LaunchRequest, ScanCandidate
from pwaccounts.supervisor.process_supervisor import ProcessSupervisor
from pwaccounts.supervisor.settings_config import load_settings, save_settings

logger = logging.getLogger("pwaccounts.supervisor.runtime")


class LauncherRuntime:
    """Everything a running host needs, built once at startup."""

    def __init__(
        self,
        *,
        store: AccountStore | None = None,
        settings: dict[str, Any] | None = None,
        settings_file: Path | None = None,
        event_sink: BroadcastEventSink | None = None,
        supervisor: ProcessSupervisor | None = None,
        scanner: DirectoryScanner | None = None,
        sleep_fn=asyncio.sleep,
    ) -> None:
        self.settings_file = settings_file
        self.settings = settings or load_settings(settings_file)
        self.store = store or AccountStore()
        self.event_sink = event_sink or BroadcastEventSink()
        self.supervisor = supervisor or ProcessSupervisor(
            event_sink=self.event_sink,
            poll_interval_seconds=self.settings["poll_interval_seconds"],
            auto_restart=self.settings["auto_restart"],
            embed_character_name=self.settings["embed_character_name"],
        )
        self.scanner = scanner or DirectoryScanner()
        self.sleep_fn = sleep_fn

    @property
    def game_path(self) -> str | None:
        return self.settings.get("game_path") or None

    async def startup(self) -> None:
        await self.store.initialize()
        self.supervisor.start()

    async def shutdown(self) -> None:
        await self.supervisor.shutdown()

    def update_settings(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Validate, persist and apply settings; raises ValueError when invalid."""
        merged = {**self.settings, **changes}
        self.settings = save_settings(merged, self.settings_file)
        self.supervisor.poll_interval_seconds = self.settings["poll_interval_seconds"]
        self.supervisor.auto_restart = self.settings["auto_restart"]
        self.supervisor.embed_character_name = self.settings["embed_character_name"]
        return self.settings

    async def launch(self, request: LaunchRequest) -> list[LaunchOutcome]:
        sequencer = LaunchSequencer(
            self.supervisor,
            self.store.get_account,
            event_sink=self.event_sink,
            default_root_dir=self.game_path,
            default_delay_seconds=self.settings["launch_delay_seconds"],
            sleep_fn=self.sleep_fn,
        )
        return await sequencer.run(request)

    async def close(self, account_ids: list[str]) -> dict[str, bool]:
        return await self.supervisor.close_many(account_ids)

    async def scan(self, root_dir: str) -> list[ScanCandidate]:
        try:
            return await self.scanner.scan_async(root_dir)
        except Exception as exc:
            self.event_sink.notify_error(f"Scan of {root_dir} failed", exc, path=str(root_dir))
            raise

    async def locate(self, root_dir: str | None) -> Path | None:
        root = root_dir or self.game_path
        if not root:
            return None
        return await asyncio.to_thread(locate_executable, root)

    async def write_permanent_script(self, account_id: str, root_dir: str | None = None) -> Path:
        account = await self.store.get_account(account_id)
        if account is None:
            raise UnknownAccountError(account_id)
        return await asyncio.to_thread(
            create_permanent_script,
            account,
            root_dir or self.game_path,
            embed_character_name=self.settings["embed_character_name"],
        )

    async def delete_account(self, account_id: str) -> bool:
        """Close a running client for the account, then drop it and its stale scripts."""
        await self.supervisor.close(account_id)
        deleted = await self.store.delete_account(account_id)
        if deleted and self.game_path:
            executable = await self.locate(self.game_path)
            if executable is not None:
                logins = {account.login for account in await self.store.list_accounts()}
                await asyncio.to_thread(cleanup_orphan_scripts, executable.parent, logins)
        return deleted
