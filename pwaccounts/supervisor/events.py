"""Outbound status and error notifications owned by the host application."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Protocol

from pwaccounts.contracts import STATUS_EVENT_SCHEMA_V1
from pwaccounts.failures import classify_failure

logger = logging.getLogger("pwaccounts.supervisor.events")

MAX_SUBSCRIBER_BACKLOG = 500


class EventSink(Protocol):
    """Receiver for supervisor status changes and error notifications."""

    def notify_status(self, account_id: str, running: bool) -> None: ...

    def notify_error(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        account_id: str = "",
        path: str = "",
    ) -> None: ...


def build_status_event(account_id: str, running: bool) -> dict[str, Any]:
    return {
        "schema_version": STATUS_EVENT_SCHEMA_V1,
        "event_type": "status",
        "account_id": account_id,
        "running": running,
        "timestamp": datetime.utcnow().isoformat(),
    }


def build_error_event(
    message: str,
    cause: BaseException | None = None,
    *,
    account_id: str = "",
    path: str = "",
) -> dict[str, Any]:
    failure: dict[str, str] | None = None
    if cause is not None:
        failure = classify_failure(error=cause, account_id=account_id, path=path)
    return {
        "event_type": "error",
        "message": message,
        "account_id": account_id,
        "failure": failure,
        "timestamp": datetime.utcnow().isoformat(),
    }


class LoggingEventSink:
    """Sink that only records notifications in the application log."""

    def notify_status(self, account_id: str, running: bool) -> None:
        logger.info("Account %s status: %s", account_id, "running" if running else "stopped")

    def notify_error(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        account_id: str = "",
        path: str = "",
    ) -> None:
        logger.error("%s (account=%s path=%s): %s", message, account_id, path, cause)


class BroadcastEventSink(LoggingEventSink):
    """Fan notifications out to per-subscriber asyncio queues (SSE clients)."""

    def __init__(self) -> None:
        self._subscribers: set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=MAX_SUBSCRIBER_BACKLOG)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _publish(self, event: dict[str, Any]) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping event for slow subscriber: %s", event.get("event_type"))

    def notify_status(self, account_id: str, running: bool) -> None:
        super().notify_status(account_id, running)
        self._publish(build_status_event(account_id, running))

    def notify_error(
        self,
        message: str,
        cause: BaseException | None = None,
        *,
        account_id: str = "",
        path: str = "",
    ) -> None:
        super().notify_error(message, cause, account_id=account_id, path=path)
        self._publish(build_error_event(message, cause, account_id=account_id, path=path))
