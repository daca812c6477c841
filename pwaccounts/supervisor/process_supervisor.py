"""Tracks game client processes launched per account and reconciles their liveness."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable

import psutil

from pwaccounts.batch.codec import render_script, validate_script_format
from pwaccounts.batch.locator import require_executable
from pwaccounts.supervisor.events import EventSink, LoggingEventSink
from pwaccounts.supervisor.models import Account, ProcessRecord, ProcessState
from pwaccounts.supervisor.process_discovery import (
    ClientDiscovery,
    process_alive,
    spawn_detached,
    terminate_process,
)
from pwaccounts.supervisor.temp_scripts import TempScriptStore

logger = logging.getLogger("pwaccounts.supervisor.process_supervisor")

POLL_INTERVAL_SECONDS = 5
RESTART_DELAY_SECONDS = 3.0

SpawnFn = Callable[[Path, Path], int]
KillFn = Callable[[int], None]
ProbeFn = Callable[[int], bool]


class ProcessSupervisor:
    """Owns the account -> process record map.

    Every insert and removal happens under one asyncio lock. The liveness poll
    probes outside the lock and only removes a record if the map still holds
    the exact record it probed, so a close or relaunch racing with a poll tick
    is never undone by a stale probe result.
    """

    def __init__(
        self,
        *,
        event_sink: EventSink | None = None,
        spawn_fn: SpawnFn | None = None,
        kill_fn: KillFn | None = None,
        probe_fn: ProbeFn | None = None,
        discovery: ClientDiscovery | None = None,
        discover_clients: bool | None = None,
        script_store: TempScriptStore | None = None,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        auto_restart: bool = False,
        restart_delay_seconds: float = RESTART_DELAY_SECONDS,
        embed_character_name: bool = False,
    ) -> None:
        self.event_sink = event_sink or LoggingEventSink()
        self.spawn_fn = spawn_fn or spawn_detached
        self.kill_fn = kill_fn or terminate_process
        self.probe_fn = probe_fn or process_alive
        if discover_clients is None:
            discover_clients = discovery is not None or sys.platform == "win32"
        self.discovery = (discovery or ClientDiscovery()) if discover_clients else None
        self.script_store = script_store or TempScriptStore()
        self.poll_interval_seconds = poll_interval_seconds
        self.auto_restart = auto_restart
        self.restart_delay_seconds = restart_delay_seconds
        self.embed_character_name = embed_character_name

        self._records: dict[str, ProcessRecord] = {}
        self._launching: set[str] = set()
        self._last_launch: dict[str, tuple[Account, str | None]] = {}
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()
        self._restarts: dict[str, asyncio.Task] = {}
        self._closed_launches: dict[str, list[ProcessRecord]] = {}
        self._poll_task: asyncio.Task | None = None

    # -- notifications -----------------------------------------------------

    def _notify_status(self, account_id: str, running: bool) -> None:
        try:
            self.event_sink.notify_status(account_id, running)
        except Exception as exc:
            logger.warning("Event sink rejected status for %s: %s", account_id, exc)

    def _notify_error(self, message: str, cause: BaseException | None, *, account_id: str = "") -> None:
        try:
            self.event_sink.notify_error(message, cause, account_id=account_id)
        except Exception as exc:
            logger.warning("Event sink rejected error for %s: %s", account_id, exc)

    def _track(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # -- queries -----------------------------------------------------------

    def list_running(self) -> list[ProcessRecord]:
        """Snapshot of tracked records; later launches and closes do not show up in it."""
        return list(self._records.values())

    def get_record(self, account_id: str) -> ProcessRecord | None:
        return self._records.get(account_id)

    def is_running(self, account_id: str) -> bool:
        return account_id in self._records

    def _tracked_pids(self) -> set[int]:
        return {record.pid for record in self._records.values()}

    # -- launch ------------------------------------------------------------

    async def launch(self, account: Account, root_dir: str | os.PathLike | None) -> ProcessRecord | None:
        """Spawn the client for one account.

        Raises a ConfigurationError when the executable cannot be located and
        SpawnError when the launcher could not be started. Returns None when
        the spawn produced no process id.
        """
        async with self._lock:
            existing = self._records.get(account.id)
            if existing is not None:
                logger.info("Account %s already running (PID %s)", account.login, existing.pid)
                return existing
            if account.id in self._launching:
                logger.info("Account %s launch already in progress", account.login)
                return None
            self._launching.add(account.id)

        try:
            return await self._launch_unlocked(account, root_dir)
        finally:
            async with self._lock:
                self._launching.discard(account.id)

    async def _launch_unlocked(self, account: Account, root_dir: str | os.PathLike | None) -> ProcessRecord | None:
        executable = await asyncio.to_thread(require_executable, root_dir)
        text = render_script(account, executable, embed_character_name=self.embed_character_name)
        validate_script_format(text)

        existing_pids: set[int] = set()
        if self.discovery is not None:
            try:
                existing_pids = await self.discovery.snapshot_pids()
            except psutil.Error as exc:
                logger.warning("Client process snapshot failed: %s", exc)

        launched_at = datetime.now()
        async with self.script_store.handoff(account.login, text) as script_path:
            logger.info("Launching %s via %s", account.login, script_path)
            pid = await asyncio.to_thread(self.spawn_fn, script_path, executable.parent)

        if not pid:
            logger.warning("Launch of %s produced no process id", account.login)
            return None

        record = ProcessRecord(
            account_id=account.id,
            pid=pid,
            login=account.login,
            started_at=launched_at,
            state=ProcessState.LAUNCHING if self.discovery is not None else ProcessState.RUNNING,
            spawn_pid=pid,
        )
        async with self._lock:
            self._records[account.id] = record
            self._last_launch[account.id] = (account, str(root_dir) if root_dir else None)
        logger.info("Launched %s (launcher PID %s)", account.login, pid)
        self._notify_status(account.id, True)

        if self.discovery is not None:
            self._track(self._associate_client(record, existing_pids, launched_at))
        return record

    async def _associate_client(
        self, record: ProcessRecord, existing_pids: set[int], launched_at: datetime
    ) -> None:
        found = None
        try:
            found = await self.discovery.find_new_client(
                existing_pids=existing_pids,
                assigned_pids=self._tracked_pids,
                launched_at=launched_at,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Client discovery for %s failed: %s", record.login, exc)

        async with self._lock:
            closed = self._take_closed_launch(record)
            current = self._records.get(record.account_id) is record
            if current:
                pid = found.pid if found is not None else record.pid
                self._records[record.account_id] = record.model_copy(
                    update={"pid": pid, "state": ProcessState.RUNNING}
                )
        if not current:
            if closed and found is not None:
                await self._kill_abandoned_client(record, found.pid)
            return
        if found is not None:
            logger.info("Associated %s with client PID %s", record.login, pid)
        else:
            logger.warning("No client process found for %s, keeping launcher PID %s", record.login, pid)

    def _take_closed_launch(self, record: ProcessRecord) -> bool:
        """Drop ``record`` from the closed-while-launching list; caller holds the lock."""
        closed = self._closed_launches.get(record.account_id, [])
        for index, candidate in enumerate(closed):
            if candidate is record:
                del closed[index]
                if not closed:
                    del self._closed_launches[record.account_id]
                return True
        return False

    async def _kill_abandoned_client(self, record: ProcessRecord, pid: int) -> None:
        # The account was closed before its client appeared; the launcher kill missed it.
        try:
            await asyncio.to_thread(self.kill_fn, pid)
            logger.info("Terminated late client for closed account %s (PID %s)", record.login, pid)
        except Exception as exc:
            logger.error("Failed to terminate late client for %s (PID %s): %s", record.login, pid, exc)
            self._notify_error(
                f"Failed to terminate client for closed account {record.login}",
                exc,
                account_id=record.account_id,
            )

    # -- close -------------------------------------------------------------

    async def close(self, account_id: str) -> bool:
        """Terminate a tracked account; returns False when it was not tracked."""
        restart = self._restarts.pop(account_id, None)
        if restart is not None:
            restart.cancel()
        async with self._lock:
            record = self._records.pop(account_id, None)
            self._last_launch.pop(account_id, None)
            if record is not None and record.state == ProcessState.LAUNCHING:
                self._closed_launches.setdefault(account_id, []).append(record)
        if record is None:
            logger.debug("Close requested for untracked account %s", account_id)
            return False

        try:
            await asyncio.to_thread(self.kill_fn, record.pid)
            logger.info("Terminated %s (PID %s)", record.login, record.pid)
        except Exception as exc:
            logger.error("Failed to terminate %s (PID %s): %s", record.login, record.pid, exc)
        self._notify_status(account_id, False)
        return True

    async def close_many(self, account_ids: list[str]) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for account_id in account_ids:
            try:
                results[account_id] = await self.close(account_id)
            except Exception as exc:
                logger.error("Close of %s failed: %s", account_id, exc)
                self._notify_error(f"Failed to close account {account_id}", exc, account_id=account_id)
                results[account_id] = False
        return results

    async def close_all(self) -> dict[str, bool]:
        return await self.close_many(list(self._records))

    # -- liveness ----------------------------------------------------------

    def _probe_all(self, records: list[ProcessRecord]) -> list[ProcessRecord]:
        dead: list[ProcessRecord] = []
        for record in records:
            try:
                alive = self.probe_fn(record.pid)
            except Exception as exc:
                logger.debug("Probe of PID %s failed: %s", record.pid, exc)
                alive = False
            if not alive:
                dead.append(record)
        return dead

    async def poll_once(self) -> list[str]:
        """Probe every running record once; returns the account ids removed."""
        async with self._lock:
            snapshot = [
                record for record in self._records.values() if record.state == ProcessState.RUNNING
            ]
        if not snapshot:
            return []

        dead = await asyncio.to_thread(self._probe_all, snapshot)

        removed: list[ProcessRecord] = []
        relaunch: list[tuple[Account, str | None]] = []
        async with self._lock:
            for record in dead:
                if self._records.get(record.account_id) is not record:
                    continue
                del self._records[record.account_id]
                removed.append(record)
                last = self._last_launch.pop(record.account_id, None)
                if self.auto_restart and last is not None:
                    relaunch.append(last)

        for record in removed:
            logger.info("Process for %s (PID %s) has exited", record.login, record.pid)
            self._notify_status(record.account_id, False)
        for account, root_dir in relaunch:
            self._schedule_restart(account, root_dir)
        return [record.account_id for record in removed]

    def _schedule_restart(self, account: Account, root_dir: str | None) -> None:
        async def _restart() -> None:
            try:
                await asyncio.sleep(self.restart_delay_seconds)
            finally:
                # Past the delay the restart is no longer cancellable by close.
                if self._restarts.get(account.id) is task:
                    del self._restarts[account.id]
            logger.info("Auto-restarting %s", account.login)
            try:
                await self.launch(account, root_dir)
            except Exception as exc:
                logger.error("Auto-restart of %s failed: %s", account.login, exc)
                self._notify_error(f"Auto-restart failed for {account.login}", exc, account_id=account.id)

        task = self._track(_restart())
        self._restarts[account.id] = task

    async def run_forever(self) -> None:
        """Run the liveness poll until cancelled."""
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Liveness poll failed: %s", exc)
            await asyncio.sleep(self.poll_interval_seconds)

    def start(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self.run_forever())
            logger.info("Liveness poll started (every %ss)", self.poll_interval_seconds)

    async def shutdown(self) -> None:
        """Stop background work; tracked game clients keep running."""
        tasks = list(self._background)
        if self._poll_task is not None:
            tasks.append(self._poll_task)
            self._poll_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._restarts.clear()
        self._closed_launches.clear()
        await self.script_store.aclose()
        logger.info("Process supervisor stopped with %d tracked account(s)", len(self._records))
