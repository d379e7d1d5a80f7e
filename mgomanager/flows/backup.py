"""
MGO Manager — Backup Flow
===========================

Sichert den aktuell auf dem Gerät aktiven Account als neuen Datensatz.

Ablauf (5 Schritte):
  1. ROOT CHECK   — has_root(): `id` muss uid=0 liefern
  2. STOP         — am force-stop
  3. NAME         — eindeutigen Namen finden (DB + Backup-Root), ggf. _1, _2, ...
  4. EXPORT       — Berechtigungen lesen (Retry, Warnung bei Fehler), mkdir, cp -r
                    Kopierfehler → FAILURE, halbfertiges Verzeichnis wird entfernt
  5. SAVE         — Account-Datensatz mit gelesenen Berechtigungen anlegen

Ein fataler Schritt hinterlässt NIE einen DB-Datensatz.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from mgomanager.config import DEFAULT_PREFIX
from mgomanager.engine.archiver import BackupArchiver
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
from mgomanager.models.account import AccountCreate, AccountRead, check_account_name, check_prefix
from mgomanager.models.log import LogLevel
from mgomanager.models.result import EngineError, ErrorKind
from mgomanager.shell.executor import Executor, force_stop_app, has_root

logger = logging.getLogger("mgo.flows.backup")

LOG_CATEGORY = "BACKUP"


class BackupRequest(BaseModel):
    """Input für ein neues Backup."""
    account_name: str = Field(..., min_length=1, max_length=64)
    prefix: str = Field(default=DEFAULT_PREFIX, max_length=32)
    has_facebook_link: bool = False
    fb_username: Optional[str] = Field(default=None, max_length=256)
    fb_password: Optional[str] = Field(default=None, max_length=256)
    fb_2fa: Optional[str] = Field(default=None, max_length=256)
    fb_temp_mail: Optional[str] = Field(default=None, max_length=256)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("account_name")
    @classmethod
    def validate_account_name(cls, v: str) -> str:
        return check_account_name(v)

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        return check_prefix(v)


@dataclass
class BackupResult:
    """Ergebnis des Backup-Flows."""
    success: bool = False
    account: Optional[AccountRead] = None
    account_name: str = ""
    backup_path: str = ""
    steps: list[FlowStep] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[EngineError] = None
    started_at: str = field(default_factory=now_iso)
    finished_at: Optional[str] = None
    duration_ms: int = 0

    @property
    def step_summary(self) -> str:
        return step_summary(self.steps)


class BackupFlow:
    """
    Usage:
        flow = BackupFlow(executor, AccountRepository(), LogRepository())
        result = await flow.execute(BackupRequest(account_name="Hauptaccount"))
    """

    STEP_NAMES = [
        "Root-Zugriff prüfen",
        "App stoppen",
        "Account-Name prüfen",
        "Daten kopieren",
        "Account in DB speichern",
    ]

    def __init__(
        self,
        executor: Executor,
        accounts: AccountRepository,
        logs: LogRepository,
        archiver: Optional[BackupArchiver] = None,
    ):
        self._executor = executor
        self._accounts = accounts
        self._logs = logs
        self._archiver = archiver or BackupArchiver(executor, FilePermissionManager(executor))

    async def execute(
        self,
        request: BackupRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> BackupResult:
        result = BackupResult(account_name=request.account_name)
        result.steps = [FlowStep(name=n) for n in self.STEP_NAMES]
        flow_start = now_ms()

        logger.info("=" * 60)
        logger.info("  BACKUP: %s%s", request.prefix, request.account_name)
        logger.info("=" * 60)

        try:
            await self._run_steps(result, request, cancel)
        except Exception as e:
            result.success = False
            result.error = EngineError(ErrorKind.COMMAND_FAILED, f"Unerwarteter Fehler: {e}")
            fail_open_steps(result.steps, str(e))
            logger.error("Backup Flow Fehler: %s", e, exc_info=True)
        finally:
            result.finished_at = now_iso()
            result.duration_ms = now_ms() - flow_start
            await self._write_log(result, request)

            logger.info("=" * 60)
            logger.info(
                "  BACKUP %s: %s (%d ms)",
                "ERFOLG" if result.success else "FEHLGESCHLAGEN",
                result.account_name,
                result.duration_ms,
            )
            logger.info("  %s", result.step_summary)
            logger.info("=" * 60)

        return result

    async def _run_steps(
        self,
        result: BackupResult,
        request: BackupRequest,
        cancel: Optional[asyncio.Event],
    ) -> None:
        def abort(kind: ErrorKind, message: str) -> None:
            result.error = EngineError(kind, message)
            fail_open_steps(result.steps, message)

        # =================================================================
        # Schritt 1: ROOT CHECK
        # =================================================================
        step = result.steps[0]
        started = start_step(step)
        if not await has_root(self._executor):
            finish_step(step, FlowStepStatus.FAILED, started, "`id` liefert kein uid=0")
            abort(ErrorKind.COMMAND_FAILED, "Root-Zugriff nicht verfügbar")
            return
        finish_step(step, FlowStepStatus.SUCCESS, started)

        # =================================================================
        # Schritt 2: STOP
        # =================================================================
        step = result.steps[1]
        started = start_step(step)
        stopped = await force_stop_app(self._executor)
        if not stopped.ok:
            finish_step(step, FlowStepStatus.FAILED, started, stopped.error.message)
            abort(stopped.error.kind, "App konnte nicht gestoppt werden")
            return
        finish_step(step, FlowStepStatus.SUCCESS, started)

        # =================================================================
        # Schritt 3: NAME
        # =================================================================
        step = result.steps[2]
        started = start_step(step)
        final_name = await self._archiver.find_unique_account_name(
            request.account_name, request.prefix, self._accounts.name_taken,
        )
        result.account_name = final_name
        result.backup_path = self._archiver.backup_path_for(request.prefix, final_name)
        if final_name != request.account_name:
            finish_step(step, FlowStepStatus.WARNING, started, f"Neuer Account-Name: {final_name}")
            result.warnings.append(f"Name vergeben, verwende {final_name}")
            logger.info("[3/5] Name vergeben, verwende %s", final_name)
        else:
            finish_step(step, FlowStepStatus.SUCCESS, started)

        # =================================================================
        # Schritt 4: EXPORT (fatal bei Kopierfehler)
        # =================================================================
        step = result.steps[3]
        started = start_step(step)
        logger.info("[4/5] Kopiere Daten → %s", result.backup_path)
        exported = await self._archiver.export_snapshot(result.backup_path, cancel=cancel)
        if not exported.ok:
            finish_step(step, FlowStepStatus.FAILED, started, exported.error.message)
            abort(exported.error.kind, exported.error.message)
            removed = await self._archiver.remove_snapshot(result.backup_path)
            if not removed.ok:
                logger.warning("Halbfertiges Backup nicht entfernt: %s", result.backup_path)
            return
        report = exported.value
        result.warnings.extend(report.warnings)
        finish_step(
            step,
            FlowStepStatus.WARNING if report.warnings else FlowStepStatus.SUCCESS,
            started,
            "; ".join(report.warnings),
        )

        # =================================================================
        # Schritt 5: SAVE
        # =================================================================
        step = result.steps[4]
        started = start_step(step)
        perms = report.permissions
        account = await self._accounts.create(AccountCreate(
            account_name=final_name,
            prefix=request.prefix,
            backup_path=result.backup_path,
            file_owner=perms.owner if perms else "",
            file_group=perms.group if perms else "",
            file_permissions=perms.mode if perms else "",
            has_facebook_link=request.has_facebook_link,
            fb_username=request.fb_username,
            fb_password=request.fb_password,
            fb_2fa=request.fb_2fa,
            fb_temp_mail=request.fb_temp_mail,
            notes=request.notes,
        ))
        finish_step(step, FlowStepStatus.SUCCESS, started, f"id={account.id}")
        result.account = account
        result.success = True

    async def _write_log(self, result: BackupResult, request: BackupRequest) -> None:
        if not result.success:
            level = LogLevel.ERROR
        elif result.warnings:
            level = LogLevel.WARNING
        else:
            level = LogLevel.INFO

        full_name = f"{request.prefix}{result.account_name}"
        details = render_steps(f"Starte Backup von {request.account_name}", result.steps)
        if result.error:
            details += f"\n\nFehler: {result.error.message}"

        try:
            await self._logs.add_log(
                level,
                LOG_CATEGORY,
                f"Account {full_name} Backup.",
                account_name=full_name,
                details=details,
            )
        except Exception as e:
            logger.warning("Log-Eintrag konnte nicht geschrieben werden: %s", e)
