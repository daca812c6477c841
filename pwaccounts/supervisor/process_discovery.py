"""Game client process lookup and OS-level process helpers."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable

import psutil

from pwaccounts.batch.locator import is_executable_name
from pwaccounts.errors import SpawnError, TerminationError

logger = logging.getLogger("pwaccounts.supervisor.process_discovery")

DISCOVERY_INITIAL_DELAY_SECONDS = 2.0
DISCOVERY_ATTEMPTS = 5
DISCOVERY_INTERVAL_SECONDS = 3.0


@dataclass(frozen=True)
class ClientProcess:
    pid: int
    started_at: datetime


def spawn_detached(script_path: Path, cwd: Path) -> int:
    """Start a launcher script as a detached process and return its pid."""
    if sys.platform != "win32":
        raise SpawnError("launching the game client is only supported on Windows")
    creationflags = subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
    try:
        process = subprocess.Popen(
            ["cmd.exe", "/c", str(script_path)],
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            close_fds=True,
            creationflags=creationflags,
        )
    except OSError as exc:
        raise SpawnError(f"failed to start launcher script {script_path}: {exc}") from exc
    return process.pid


def terminate_process(pid: int) -> None:
    """Forcefully terminate a process; raises TerminationError when refused."""
    if sys.platform == "win32":
        result = subprocess.run(
            ["taskkill", "/PID", str(pid), "/F"],
            capture_output=True,
            text=True,
            creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
        )
        if result.stdout:
            logger.info("taskkill stdout: %s", result.stdout.strip())
        if result.returncode != 0:
            raise TerminationError(pid, (result.stderr or result.stdout or "").strip())
        return
    try:
        os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))
    except OSError as exc:
        raise TerminationError(pid, str(exc)) from exc


def process_alive(pid: int) -> bool:
    """Probe pid existence without signalling it; inaccessible counts as gone."""
    if pid <= 0:
        return False
    try:
        process = psutil.Process(pid)
        return process.is_running() and process.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


class ClientDiscovery:
    """Associates a launcher spawn with the game client process it started."""

    def __init__(
        self,
        *,
        initial_delay_seconds: float = DISCOVERY_INITIAL_DELAY_SECONDS,
        attempts: int = DISCOVERY_ATTEMPTS,
        interval_seconds: float = DISCOVERY_INTERVAL_SECONDS,
    ) -> None:
        self.initial_delay_seconds = initial_delay_seconds
        self.attempts = attempts
        self.interval_seconds = interval_seconds

    def list_clients(self) -> list[ClientProcess]:
        clients: list[ClientProcess] = []
        for process in psutil.process_iter(["pid", "name", "create_time"]):
            try:
                info = process.info
                name = info.get("name") or ""
                if not is_executable_name(name):
                    continue
                created = info.get("create_time")
                started_at = datetime.fromtimestamp(created) if created else datetime.now()
                clients.append(ClientProcess(pid=int(info["pid"]), started_at=started_at))
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return clients

    async def snapshot_pids(self) -> set[int]:
        clients = await asyncio.to_thread(self.list_clients)
        return {client.pid for client in clients}

    def pick_new_client(
        self,
        clients: list[ClientProcess],
        *,
        existing_pids: set[int],
        assigned_pids: set[int],
        launched_at: datetime,
    ) -> ClientProcess | None:
        """Choose the unassigned client that started closest to the launch."""
        candidates = [
            client
            for client in clients
            if client.pid not in existing_pids
            and client.pid not in assigned_pids
            and client.started_at >= launched_at.replace(microsecond=0)
        ]
        if not candidates:
            return None
        return min(
            candidates,
            key=lambda client: abs((client.started_at - launched_at).total_seconds()),
        )

    async def find_new_client(
        self,
        *,
        existing_pids: set[int],
        assigned_pids: Callable[[], set[int]],
        launched_at: datetime,
    ) -> ClientProcess | None:
        """Poll for the client started by a launch, skipping pids already tracked."""
        await asyncio.sleep(self.initial_delay_seconds)
        for attempt in range(1, self.attempts + 1):
            try:
                clients = await asyncio.to_thread(self.list_clients)
            except psutil.Error as exc:
                logger.warning("Client process listing failed: %s", exc)
                clients = []
            found = self.pick_new_client(
                clients,
                existing_pids=existing_pids,
                assigned_pids=assigned_pids(),
                launched_at=launched_at,
            )
            if found is not None:
                return found
            logger.debug("No new client process yet (attempt %d/%d)", attempt, self.attempts)
            if attempt < self.attempts:
                await asyncio.sleep(self.interval_seconds)
        return None
