"""
MGO Manager — Account löschen
===============================

Reihenfolge ist fest:
  1. rm -rf "<backup_path>"   — best-effort, Fehler = Warnung
  2. DB-Datensatz löschen     — IMMER, genau einmal, NACH Schritt 1

So zeigt die DB nie auf ein halb gelöschtes Verzeichnis, und ein
Absturz zwischen 1 und 2 hinterlässt höchstens einen Datensatz ohne
Dateien (den der User erneut löschen kann), nie verwaiste Dateien
ohne Datensatz.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from mgomanager.engine.archiver import BackupArchiver
from mgomanager.engine.db_ops import AccountRepository, LogRepository
from mgomanager.engine.permissions import FilePermissionManager
from mgomanager.models.log import LogLevel
from mgomanager.models.result import EngineError, ErrorKind
from mgomanager.shell.executor import Executor

logger = logging.getLogger("mgo.flows.delete")

LOG_CATEGORY = "DELETE"


@dataclass
class DeleteResult:
    success: bool = False
    account_id: Optional[int] = None
    account_name: str = ""
    folder_removed: bool = False
    record_deleted: bool = False
    warnings: list[str] = field(default_factory=list)
    error: Optional[EngineError] = None


class DeleteFlow:
    """
    Usage:
        result = await DeleteFlow(executor, AccountRepository(), LogRepository()).execute(7)
    """

    def __init__(
        self,
        executor: Executor,
        accounts: AccountRepository,
        logs: LogRepository,
        archiver: Optional[BackupArchiver] = None,
    ):
        self._accounts = accounts
        self._logs = logs
        self._archiver = archiver or BackupArchiver(executor, FilePermissionManager(executor))

    async def execute(self, account_id: int) -> DeleteResult:
        result = DeleteResult(account_id=account_id)

        account = await self._accounts.get(account_id)
        if account is None:
            result.error = EngineError(ErrorKind.NOT_FOUND, f"Account {account_id} nicht gefunden")
            logger.warning("Delete: Account %d nicht gefunden", account_id)
            return result

        result.account_name = account.full_name
        logger.info("Lösche Account %s (%s)", account.full_name, account.backup_path)

        # 1. Backup-Verzeichnis (best-effort)
        removed = await self._archiver.remove_snapshot(account.backup_path)
        result.folder_removed = removed.ok
        if not removed.ok:
            result.warnings.append(f"Backup-Ordner nicht gelöscht: {removed.error.message}")
            logger.warning("Backup-Ordner %s nicht gelöscht: %s", account.backup_path, removed.error.message)

        # 2. DB-Datensatz (immer)
        try:
            result.record_deleted = await self._accounts.delete(account_id)
        except Exception as e:
            result.error = EngineError(ErrorKind.COMMAND_FAILED, f"DB-Datensatz nicht gelöscht: {e}")
            logger.error("Delete Flow Fehler bei Account %d: %s", account_id, e, exc_info=True)
        result.success = result.record_deleted

        if result.error:
            level = LogLevel.ERROR
        elif result.warnings:
            level = LogLevel.WARNING
        else:
            level = LogLevel.INFO
        details = [*result.warnings, *([result.error.message] if result.error else [])]
        try:
            await self._logs.add_log(
                level,
                LOG_CATEGORY,
                f"Account {account.full_name} {'gelöscht' if result.success else 'Löschen fehlgeschlagen'}.",
                account_name=account.full_name,
                details="\n".join(details) or None,
            )
        except Exception as e:
            logger.warning("Log-Eintrag konnte nicht geschrieben werden: %s", e)

        return result
