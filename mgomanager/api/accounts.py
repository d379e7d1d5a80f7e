"""
Accounts API
=============

Endpoints:
  GET    /api/accounts                 — Alle Accounts (zuletzt gespielt zuerst)
  GET    /api/accounts/{id}            — Einzelner Account
  POST   /api/accounts                 — Backup des aktiven Accounts anlegen
  PUT    /api/accounts/{id}            — Metadaten ändern (sus_level, FB, Notizen, ...)
  POST   /api/accounts/{id}/restore    — Account auf das Gerät zurückspielen
  DELETE /api/accounts/{id}            — Backup-Ordner + Datensatz löschen

Geräte-Aktionen laufen serialisiert über device_lock (409 wenn belegt).
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from mgomanager.api.deps import (
    device_lock,
    ensure_idle,
    get_accounts,
    get_executor,
    get_logs,
    raise_for_error,
)
from mgomanager.engine.db_ops import AccountRepository, LogRepository
from mgomanager.flows.backup import BackupFlow, BackupRequest
from mgomanager.flows.delete import DeleteFlow
from mgomanager.flows.restore import RestoreFlow
from mgomanager.models.account import AccountUpdate
from mgomanager.shell.executor import Executor

logger = logging.getLogger("mgo.api.accounts")

router = APIRouter(prefix="/api/accounts", tags=["Accounts"])


class RestoreRequest(BaseModel):
    start_app: bool = Field(default=True, description="App nach dem Restore starten")


# =============================================================================
# Lesen
# =============================================================================

@router.get("")
async def list_accounts(accounts: AccountRepository = Depends(get_accounts)):
    rows = await accounts.list_all()
    return {"accounts": [a.model_dump() for a in rows], "count": len(rows)}


@router.get("/{account_id}")
async def get_account(account_id: int, accounts: AccountRepository = Depends(get_accounts)):
    account = await accounts.get(account_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Account #{account_id} nicht gefunden")
    return account.model_dump()


# =============================================================================
# POST /api/accounts (Backup)
# =============================================================================

@router.post("", status_code=201)
async def create_backup(
    req: BackupRequest,
    executor: Executor = Depends(get_executor),
    accounts: AccountRepository = Depends(get_accounts),
    logs: LogRepository = Depends(get_logs),
):
    ensure_idle()
    async with device_lock:
        result = await BackupFlow(executor, accounts, logs).execute(req)

    if not result.success:
        raise_for_error(result.error)

    return {
        "status": "ok",
        "account": result.account.model_dump(),
        "warnings": result.warnings,
        "steps": [asdict(s) for s in result.steps],
        "duration_ms": result.duration_ms,
    }


# =============================================================================
# PUT /api/accounts/{id}
# =============================================================================

@router.put("/{account_id}")
async def update_account(
    account_id: int,
    changes: AccountUpdate,
    accounts: AccountRepository = Depends(get_accounts),
):
    if await accounts.get(account_id) is None:
        raise HTTPException(status_code=404, detail=f"Account #{account_id} nicht gefunden")
    updated = await accounts.update(account_id, changes)
    logger.info("Account %d aktualisiert: %s", account_id, sorted(changes.model_fields_set))
    return updated.model_dump()


# =============================================================================
# POST /api/accounts/{id}/restore
# =============================================================================

@router.post("/{account_id}/restore")
async def restore_account(
    account_id: int,
    req: RestoreRequest | None = None,
    executor: Executor = Depends(get_executor),
    accounts: AccountRepository = Depends(get_accounts),
    logs: LogRepository = Depends(get_logs),
):
    start_app = req.start_app if req else True
    ensure_idle()
    async with device_lock:
        result = await RestoreFlow(executor, accounts, logs).execute(account_id, start_app=start_app)

    if not result.success:
        raise_for_error(result.error)

    return {
        "status": result.state.value,
        "account_name": result.account_name,
        "warnings": result.warnings,
        "steps": [asdict(s) for s in result.steps],
        "duration_ms": result.duration_ms,
    }


# =============================================================================
# DELETE /api/accounts/{id}
# =============================================================================

@router.delete("/{account_id}")
async def delete_account(
    account_id: int,
    executor: Executor = Depends(get_executor),
    accounts: AccountRepository = Depends(get_accounts),
    logs: LogRepository = Depends(get_logs),
):
    ensure_idle()
    async with device_lock:
        result = await DeleteFlow(executor, accounts, logs).execute(account_id)

    if not result.success:
        raise_for_error(result.error)

    return {
        "status": "deleted",
        "account_name": result.account_name,
        "folder_removed": result.folder_removed,
        "warnings": result.warnings,
    }
