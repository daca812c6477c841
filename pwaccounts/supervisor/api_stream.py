"""Server-sent event streaming of process status and error notifications."""

import asyncio
import json

from fastapi import APIRouter, Depends, Request
from starlette.responses import StreamingResponse

from pwaccounts.supervisor.api_common import get_runtime
from pwaccounts.supervisor.runtime import LauncherRuntime

router = APIRouter()

KEEPALIVE_SECONDS = 15


@router.get("/events/stream")
async def stream_events(request: Request, runtime: LauncherRuntime = Depends(get_runtime)):
    """Stream status/error events in SSE format until the client disconnects."""
    sink = runtime.event_sink
    queue = sink.subscribe()

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {json.dumps(event)}\n\n"
        finally:
            sink.unsubscribe(queue)

    headers = {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
    }
    return StreamingResponse(event_generator(), headers=headers)
