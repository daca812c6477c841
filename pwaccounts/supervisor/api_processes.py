"""Launch, close and process listing endpoints."""

import logging

from fastapi import APIRouter, Depends

from pwaccounts.supervisor.api_common import get_runtime, http_error
from pwaccounts.supervisor.models import CloseRequest, LaunchOutcome, LaunchRequest, ProcessRecord
from pwaccounts.supervisor.runtime import LauncherRuntime

logger = logging.getLogger("pwaccounts.supervisor.api_processes")

router = APIRouter()


@router.get("/processes", response_model=list[ProcessRecord])
async def list_processes(runtime: LauncherRuntime = Depends(get_runtime)):
    return runtime.supervisor.list_running()


@router.post("/launch", response_model=list[LaunchOutcome])
async def launch_accounts(request: LaunchRequest, runtime: LauncherRuntime = Depends(get_runtime)):
    """Launch accounts in order; per-account failures are reported in the outcomes."""
    try:
        return await runtime.launch(request)
    except Exception as exc:
        raise http_error(exc, path=request.root_dir or runtime.game_path or "") from exc


@router.post("/close")
async def close_accounts(request: CloseRequest, runtime: LauncherRuntime = Depends(get_runtime)):
    results = await runtime.close(request.account_ids)
    return {"closed": [account_id for account_id, closed in results.items() if closed]}
