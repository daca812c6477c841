"""Staggered launching of several accounts."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable

from pwaccounts.batch.locator import require_executable
from pwaccounts.errors import SpawnError, UnknownAccountError
from pwaccounts.failures import classify_failure
from pwaccounts.supervisor.events import EventSink, LoggingEventSink
from pwaccounts.supervisor.models import Account, LaunchOutcome, LaunchRequest
from pwaccounts.supervisor.process_supervisor import ProcessSupervisor

logger = logging.getLogger("pwaccounts.supervisor.launch_sequencer")

DEFAULT_LAUNCH_DELAY_SECONDS = 15
MIN_LAUNCH_DELAY_SECONDS = 10
MAX_LAUNCH_DELAY_SECONDS = 60
SETTLE_DELAY_SECONDS = 2

AccountLookup = Callable[[str], Awaitable[Account | None]]


def clamp_delay(delay_seconds: float | None, account_count: int) -> float:
    """Delay between launches; zero for a single account."""
    if account_count <= 1:
        return 0
    if delay_seconds is None:
        delay_seconds = DEFAULT_LAUNCH_DELAY_SECONDS
    return max(MIN_LAUNCH_DELAY_SECONDS, min(MAX_LAUNCH_DELAY_SECONDS, float(delay_seconds)))


class LaunchSequencer:
    def __init__(
        self,
        supervisor: ProcessSupervisor,
        account_lookup: AccountLookup,
        *,
        event_sink: EventSink | None = None,
        default_root_dir: str | os.PathLike | None = None,
        default_delay_seconds: float = DEFAULT_LAUNCH_DELAY_SECONDS,
        settle_delay_seconds: float = SETTLE_DELAY_SECONDS,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.supervisor = supervisor
        self.account_lookup = account_lookup
        self.event_sink = event_sink or supervisor.event_sink or LoggingEventSink()
        self.default_root_dir = default_root_dir
        self.default_delay_seconds = default_delay_seconds
        self.settle_delay_seconds = settle_delay_seconds
        self.sleep_fn = sleep_fn

    async def run(self, request: LaunchRequest) -> list[LaunchOutcome]:
        """Launch accounts in order, one failure never stopping the rest.

        The executable is resolved once up front; a ConfigurationError there
        aborts the whole request and propagates to the caller.
        """
        root_dir = request.root_dir or self.default_root_dir
        await asyncio.to_thread(require_executable, root_dir)

        account_ids = list(request.account_ids)
        requested = request.delay_seconds
        delay = clamp_delay(
            requested if requested is not None else self.default_delay_seconds, len(account_ids)
        )
        if account_ids:
            logger.info("Launching %d account(s), %ss apart", len(account_ids), delay)

        outcomes: list[LaunchOutcome] = []
        for index, account_id in enumerate(account_ids):
            if index > 0 and delay:
                await self.sleep_fn(delay)
            outcomes.append(await self._launch_one(account_id, root_dir))
            if index < len(account_ids) - 1:
                await self.sleep_fn(self.settle_delay_seconds)
        return outcomes

    async def _launch_one(self, account_id: str, root_dir) -> LaunchOutcome:
        try:
            account = await self.account_lookup(account_id)
            if account is None:
                raise UnknownAccountError(account_id)
            record = await self.supervisor.launch(account, root_dir)
            if record is None:
                raise SpawnError(f"launch of {account.login} produced no process id")
        except Exception as exc:
            logger.error("Launch of account %s failed: %s", account_id, exc)
            try:
                self.event_sink.notify_error(
                    f"Failed to launch account {account_id}", exc, account_id=account_id
                )
            except Exception as sink_exc:
                logger.warning("Event sink rejected error for %s: %s", account_id, sink_exc)
            return LaunchOutcome(
                account_id=account_id,
                success=False,
                error=classify_failure(error=exc, account_id=account_id),
            )
        return LaunchOutcome(account_id=account_id, success=True, pid=record.pid)
