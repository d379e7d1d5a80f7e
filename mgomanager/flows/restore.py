"""
MGO Manager — Restore Flow
============================

Tauscht die Live-App-Daten gegen den Snapshot eines Accounts.

Zustände pro Aufruf:  IDLE → RESTORING → SUCCESS | FAILURE

Zwingender Ablauf (5 Schritte):
  1. VALIDATE     — Snapshot-Einträge im Backup-Verzeichnis vorhanden?
  2. STOP         — am force-stop (laufende App würde Dateien überschreiben)
  3. COPY         — Backup → Live (rm -rf + cp -rT). Fehler = FAILURE,
                    es wird KEIN Berechtigungs-Befehl mehr abgesetzt.
  4. PERMISSIONS  — beim Backup gelesene Owner/Group/Mode rekursiv setzen.
                    Ungültige gespeicherte Werte → Live-Werte, Warnung.
                    Fehler = Warnung, Ergebnis bleibt SUCCESS (Dateiinhalt
                    ist das primäre Kriterium, Ownership per Hand reparierbar).
  5. LAUNCH       — optional App starten (Fehler = Warnung)

Danach: last_played_at aktualisieren + Log-Eintrag (Kategorie RESTORE).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from mgomanager.engine.archiver import PERMISSION_TARGETS, BackupArchiver
from mgomanager.engine.db_ops import AccountRepository, LogRepository
from mgomanager.engine.permissions import FilePermissionManager
from mgomanager.flows.steps import (
    FlowStep,
    FlowStepStatus,
    fail_open_steps,
    finish_step,
    now_iso,
    now_ms,
    render_steps,
    start_step,
    step_summary,
)
from mgomanager.models.account import AccountRead
from mgomanager.models.log import LogLevel
from mgomanager.models.result import EngineError, ErrorKind
from mgomanager.shell.executor import Executor, force_stop_app, launch_app

logger = logging.getLogger("mgo.flows.restore")

LOG_CATEGORY = "RESTORE"


class RestoreState(str, Enum):
    IDLE = "idle"
    RESTORING = "restoring"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class RestoreResult:
    """Ergebnis des Restore-Flows."""
    state: RestoreState = RestoreState.IDLE
    account_id: Optional[int] = None
    account_name: str = ""
    steps: list[FlowStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[EngineError] = None
    started_at: str = field(default_factory=now_iso)
    finished_at: Optional[str] = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.state == RestoreState.SUCCESS

    @property
    def step_summary(self) -> str:
        return step_summary(self.steps)

    def fail(self, kind: ErrorKind, message: str) -> None:
        self.state = RestoreState.FAILURE
        self.error = EngineError(kind=kind, message=message)


class RestoreFlow:
    """
    Usage:
        flow = RestoreFlow(executor, AccountRepository(), LogRepository())
        result = await flow.execute(account_id=7, start_app=True)
        if result.success:
            ...
    """

    STEP_NAMES = [
        "Backup validieren",
        "App stoppen",
        "Accountdaten kopieren",
        "Berechtigungen setzen",
        "App starten",
    ]

    def __init__(
        self,
        executor: Executor,
        accounts: AccountRepository,
        logs: LogRepository,
        archiver: Optional[BackupArchiver] = None,
        permissions: Optional[FilePermissionManager] = None,
    ):
        self._executor = executor
        self._accounts = accounts
        self._logs = logs
        self._permissions = permissions or FilePermissionManager(executor)
        self._archiver = archiver or BackupArchiver(executor, self._permissions)

    async def execute(
        self,
        account_id: int,
        start_app: bool = True,
        cancel: Optional[asyncio.Event] = None,
    ) -> RestoreResult:
        result = RestoreResult(account_id=account_id)
        result.steps = [FlowStep(name=n) for n in self.STEP_NAMES]
        flow_start = now_ms()
        account: Optional[AccountRead] = None

        try:
            account = await self._accounts.get(account_id)
            if account is None:
                result.fail(ErrorKind.NOT_FOUND, f"Account {account_id} nicht gefunden")
                fail_open_steps(result.steps, "")
                logger.error("Restore: Account %d nicht gefunden", account_id)
                return result

            result.account_name = account.full_name
            result.state = RestoreState.RESTORING

            logger.info("=" * 60)
            logger.info("  RESTORE: %s (id=%d)", account.full_name, account_id)
            logger.info("=" * 60)

            await self._run_steps(result, account, start_app, cancel)

        except Exception as e:
            result.fail(ErrorKind.COMMAND_FAILED, f"Unerwarteter Fehler: {e}")
            fail_open_steps(result.steps, str(e))
            logger.error("Restore Flow Fehler: %s", e, exc_info=True)

        finally:
            result.finished_at = now_iso()
            result.duration_ms = now_ms() - flow_start
            await self._write_log(result, account)

            logger.info("=" * 60)
            logger.info(
                "  RESTORE %s: %s (%d ms)",
                "ERFOLG" if result.success else "FEHLGESCHLAGEN",
                result.account_name or "?",
                result.duration_ms,
            )
            logger.info("  %s", result.step_summary)
            logger.info("=" * 60)

        return result

    async def _run_steps(
        self,
        result: RestoreResult,
        account: AccountRead,
        start_app: bool,
        cancel: Optional[asyncio.Event],
    ) -> None:
        backup_path = account.backup_path

        # =================================================================
        # Schritt 1: VALIDATE
        # =================================================================
        step = result.steps[0]
        started = start_step(step)
        logger.info("[1/5] Validiere Backup: %s", backup_path)
        valid = await self._archiver.validate_snapshot(backup_path)
        if not valid.ok:
            finish_step(step, FlowStepStatus.FAILED, started, valid.error.message)
            result.fail(valid.error.kind, valid.error.message)
            fail_open_steps(result.steps, "")
            return
        finish_step(step, FlowStepStatus.SUCCESS, started)

        # =================================================================
        # Schritt 2: STOP
        # =================================================================
        step = result.steps[1]
        started = start_step(step)
        logger.info("[2/5] Stoppe App...")
        stopped = await force_stop_app(self._executor)
        if not stopped.ok:
            finish_step(step, FlowStepStatus.FAILED, started, stopped.error.message)
            result.fail(stopped.error.kind, f"App konnte nicht gestoppt werden: {stopped.error.message}")
            fail_open_steps(result.steps, "")
            return
        finish_step(step, FlowStepStatus.SUCCESS, started)

        # =================================================================
        # Schritt 3: COPY (fatal)
        # =================================================================
        step = result.steps[2]
        started = start_step(step)
        logger.info("[3/5] Kopiere Accountdaten...")
        imported = await self._archiver.import_snapshot(backup_path, cancel=cancel)
        if not imported.ok:
            finish_step(step, FlowStepStatus.FAILED, started, imported.error.message)
            result.fail(ErrorKind.COPY_FAILED, imported.error.message)
            fail_open_steps(result.steps, "")
            logger.error("[3/5] Kopieren fehlgeschlagen: %s", imported.error.message)
            return
        report = imported.value
        result.warnings.extend(report.warnings)
        finish_step(
            step,
            FlowStepStatus.WARNING if report.warnings else FlowStepStatus.SUCCESS,
            started,
            "; ".join(report.warnings),
        )

        # =================================================================
        # Schritt 4: PERMISSIONS (best-effort)
        # =================================================================
        step = result.steps[3]
        started = start_step(step)
        notes: list[str] = []
        try:
            stored = account.permissions
        except ValidationError as e:
            stored = None
            note = (
                f"Gespeicherte Berechtigungen ungültig "
                f"({account.file_owner!r}:{account.file_group!r} {account.file_permissions!r})"
            )
            notes.append(note)
            result.warnings.append(note)
            logger.warning("[4/5] %s: %s", note, e.errors()[0]["msg"])

        perms = stored or report.permissions
        if perms is None:
            detail = "Keine Berechtigungen bekannt (weder gespeichert noch live lesbar)"
            finish_step(step, FlowStepStatus.WARNING, started, "; ".join([*notes, detail]))
            result.warnings.append(detail)
            logger.warning("[4/5] %s", detail)
        else:
            logger.info("[4/5] Setze Berechtigungen: %s", perms)
            failures = await self._permissions.apply_permissions(list(PERMISSION_TARGETS), perms)
            if failures:
                detail = "; ".join(failures)
                finish_step(step, FlowStepStatus.WARNING, started, "; ".join([*notes, detail]))
                result.warnings.append(f"Berechtigungen setzen fehlgeschlagen: {detail}")
                logger.warning("[4/5] Berechtigungen unvollständig: %s", detail)
            elif notes:
                finish_step(step, FlowStepStatus.WARNING, started, f"{notes[0]}, live gelesen: {perms}")
            else:
                finish_step(step, FlowStepStatus.SUCCESS, started, str(perms))

        # =================================================================
        # Schritt 5: LAUNCH (optional)
        # =================================================================
        step = result.steps[4]
        started = start_step(step)
        if start_app:
            launched = await launch_app(self._executor)
            if launched.ok:
                finish_step(step, FlowStepStatus.SUCCESS, started)
            else:
                finish_step(step, FlowStepStatus.WARNING, started, launched.error.message)
                result.warnings.append(f"App konnte nicht gestartet werden: {launched.error.message}")
        else:
            finish_step(step, FlowStepStatus.SKIPPED, started, "Start nicht gewünscht")

        result.state = RestoreState.SUCCESS

        try:
            await self._accounts.update_last_played(account.id)
        except Exception as e:
            logger.warning("last_played_at Update fehlgeschlagen: %s", e)

    async def _write_log(self, result: RestoreResult, account: Optional[AccountRead]) -> None:
        if result.success:
            level = LogLevel.WARNING if result.warnings else LogLevel.INFO
        else:
            level = LogLevel.ERROR

        name = account.full_name if account else None
        details = render_steps(f"Starte Restore von {name or 'Unbekannt'}", result.steps)
        if result.error:
            details += f"\n\nFehler: {result.error.message}"

        try:
            await self._logs.add_log(
                level,
                LOG_CATEGORY,
                f"Account {name or 'unbekannt'} Restore.",
                account_name=name,
                details=details,
            )
        except Exception as e:
            logger.warning("Log-Eintrag konnte nicht geschrieben werden: %s", e)
