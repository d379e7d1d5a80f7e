"""
Gemeinsame Abhängigkeiten der Router
======================================

Executor, Repositories und Services werden per FastAPI-Depends geliefert,
damit Tests sie über app.dependency_overrides ersetzen können.

device_lock serialisiert alle Aktionen, die App-Daten auf dem Gerät
anfassen (Backup, Restore, Delete, Import). Die Engine selbst hält keine
Locks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import Depends, HTTPException

from mgomanager.config import create_shell_client
from mgomanager.engine.db_ops import AccountRepository, LogRepository
from mgomanager.engine.exporter import ExportService
from mgomanager.engine.ssh_sync import SSHSyncService
from mgomanager.models.result import EngineError, ErrorKind
from mgomanager.models.ssh import SSHConfig
from mgomanager.shell.executor import Executor, RootExecutor

logger = logging.getLogger("mgo.api")

GENERIC_ERROR = "Etwas ist schiefgelaufen, siehe Log"

device_lock = asyncio.Lock()

_executor: Optional[Executor] = None


def get_executor() -> Executor:
    global _executor
    if _executor is None:
        _executor = RootExecutor(create_shell_client())
    return _executor


def get_accounts() -> AccountRepository:
    return AccountRepository()


def get_logs() -> LogRepository:
    return LogRepository()


def get_ssh() -> SSHSyncService:
    return SSHSyncService(SSHConfig.from_env())


def get_exporter(
    accounts: AccountRepository = Depends(get_accounts),
    logs: LogRepository = Depends(get_logs),
    ssh: SSHSyncService = Depends(get_ssh),
) -> ExportService:
    return ExportService(accounts, logs, ssh=ssh)


def ensure_idle() -> None:
    if device_lock.locked():
        raise HTTPException(status_code=409, detail="Es läuft bereits eine Aktion auf dem Gerät")


def raise_for_error(error: Optional[EngineError]) -> None:
    """
    Übersetzt einen Engine-Fehler in eine HTTP-Antwort.

    Details stehen im Log; nach außen geht nur eine generische Meldung,
    außer bei NOT_FOUND / NOT_CONFIGURED (die sind für den User lesbar).
    """
    if error is None:
        raise HTTPException(status_code=500, detail=GENERIC_ERROR)
    if error.kind == ErrorKind.NOT_FOUND:
        raise HTTPException(status_code=404, detail=error.message)
    if error.kind == ErrorKind.NOT_CONFIGURED:
        raise HTTPException(status_code=400, detail=error.message)
    logger.error("%s: %s", error.kind.value, error.message)
    raise HTTPException(status_code=500, detail=GENERIC_ERROR)
