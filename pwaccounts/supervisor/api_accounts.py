"""Account CRUD, import/export and settings endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from pwaccounts.errors import UnknownAccountError
from pwaccounts.supervisor.account_store import parse_import, render_export
from pwaccounts.supervisor.api_common import get_runtime, http_error
from pwaccounts.supervisor.models import (
    Account,
    AccountCreate,
    ImportRequest,
    ImportResult,
    ScriptRequest,
)
from pwaccounts.supervisor.runtime import LauncherRuntime

logger = logging.getLogger("pwaccounts.supervisor.api_accounts")

router = APIRouter()


@router.get("/accounts", response_model=list[Account])
async def list_accounts(runtime: LauncherRuntime = Depends(get_runtime)):
    return await runtime.store.list_accounts()


@router.post("/accounts", response_model=Account)
async def create_account(payload: AccountCreate, runtime: LauncherRuntime = Depends(get_runtime)):
    try:
        account = Account(**payload.model_dump())
        return await runtime.store.save_account(account)
    except ValueError as exc:
        raise http_error(exc) from exc


@router.put("/accounts/{account_id}", response_model=Account)
async def update_account(
    account_id: str, payload: AccountCreate, runtime: LauncherRuntime = Depends(get_runtime)
):
    existing = await runtime.store.get_account(account_id)
    if existing is None:
        raise http_error(UnknownAccountError(account_id), account_id=account_id)
    try:
        account = Account(
            id=existing.id, source_script=existing.source_script, **payload.model_dump()
        )
        return await runtime.store.save_account(account)
    except ValueError as exc:
        raise http_error(exc, account_id=account_id) from exc


@router.delete("/accounts/{account_id}")
async def delete_account(account_id: str, runtime: LauncherRuntime = Depends(get_runtime)):
    if not await runtime.delete_account(account_id):
        raise http_error(UnknownAccountError(account_id), account_id=account_id)
    return {"status": "deleted", "account_id": account_id}


@router.post("/accounts/import", response_model=ImportResult)
async def import_accounts(payload: ImportRequest, runtime: LauncherRuntime = Depends(get_runtime)):
    """Persist confirmed scan candidates or the contents of an export file."""
    candidates = list(payload.candidates)
    if payload.content:
        try:
            candidates.extend(parse_import(payload.content, payload.format))
        except ValueError as exc:
            raise http_error(exc) from exc
    return await runtime.store.import_candidates(candidates)


@router.get("/accounts/export", response_class=PlainTextResponse)
async def export_accounts(format: str = "json", runtime: LauncherRuntime = Depends(get_runtime)):
    try:
        text = render_export(await runtime.store.list_accounts(), format)
    except ValueError as exc:
        raise http_error(exc) from exc
    media_type = "application/json" if format.lower() == "json" else "text/csv"
    return PlainTextResponse(text, media_type=media_type)


@router.post("/accounts/{account_id}/script")
async def write_account_script(
    account_id: str, payload: ScriptRequest, runtime: LauncherRuntime = Depends(get_runtime)
):
    """Write a reusable pw_<login>.bat next to the game client."""
    try:
        path = await runtime.write_permanent_script(account_id, payload.root_dir)
    except Exception as exc:
        raise http_error(exc, account_id=account_id, path=payload.root_dir or "") from exc
    return {"account_id": account_id, "path": str(path)}


@router.get("/settings")
async def get_settings(runtime: LauncherRuntime = Depends(get_runtime)):
    return runtime.settings


@router.put("/settings")
async def put_settings(changes: dict, runtime: LauncherRuntime = Depends(get_runtime)):
    try:
        return runtime.update_settings(changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
