"""Script folder scanning and executable lookup endpoints."""

from fastapi import APIRouter, Depends

from pwaccounts.errors import InvalidRootDirectoryError
from pwaccounts.supervisor.api_common import get_runtime, http_error
from pwaccounts.supervisor.models import LocateRequest, ScanCandidate, ScanRequest
from pwaccounts.supervisor.runtime import LauncherRuntime

router = APIRouter()


@router.post("/scan", response_model=list[ScanCandidate])
async def scan_scripts(request: ScanRequest, runtime: LauncherRuntime = Depends(get_runtime)):
    """Return candidates found under root_dir; nothing is saved."""
    if not request.root_dir.strip():
        raise http_error(InvalidRootDirectoryError(request.root_dir))
    try:
        return await runtime.scan(request.root_dir)
    except Exception as exc:
        raise http_error(exc, path=request.root_dir) from exc


@router.post("/locate")
async def locate(request: LocateRequest, runtime: LauncherRuntime = Depends(get_runtime)):
    executable = await runtime.locate(request.root_dir)
    return {
        "root_dir": request.root_dir or runtime.game_path,
        "found": executable is not None,
        "executable": str(executable) if executable else None,
    }
