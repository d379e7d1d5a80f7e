"""
MGO Manager — BackupArchiver
==============================

Kopiert die privaten App-Daten eines Accounts in dessen Backup-Verzeichnis
(Export) und zurück (Import). Alle Befehle laufen über den Root-Executor,
weil die Quelle einem anderen Unix-User gehört.

Snapshot-Inhalt (<backup_root>/<prefix><name>/):
  DiskBasedCacheDirectory/   ← /data/data/<pkg>/files/DiskBasedCacheDirectory
  shared_prefs/              ← /data/data/<pkg>/shared_prefs
  settings_ssaid.xml         ← /data/system/users/0/settings_ssaid.xml

Regeln:
  - Vor dem Kopieren werden die Berechtigungen von files/ gelesen, also
    genau dem Verzeichnis, das der Restore per chown -R / chmod -R setzt.
    Fehler dabei → Warnung, weiter (ein Backup ohne exakte Ownership ist
    besser als keins, der Restore setzt sie ohnehin neu).
  - Kopierfehler sind FATAL (COPY_FAILED), kein Retry.
  - Der Cancel-Token wird ZWISCHEN den Einträgen geprüft. Ein laufendes
    cp wird nicht unterbrochen.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from mgomanager.config import (
    BACKUP_ROOT,
    MGO_DISK_CACHE_PATH,
    MGO_FILES_PATH,
    MGO_PREFS_PATH,
    SSAID_PATH,
)
from mgomanager.engine.permissions import FilePermissionManager
from mgomanager.models.permissions import FilePermissions
from mgomanager.models.result import ErrorKind, Result
from mgomanager.shell.client import quote_path
from mgomanager.shell.executor import Executor

logger = logging.getLogger("mgo.engine.archiver")


# =============================================================================
# Snapshot-Einträge
# =============================================================================

@dataclass(frozen=True)
class SnapshotItem:
    name: str                       # Name im Backup-Verzeichnis
    live_path: str                  # Pfad auf dem Gerät
    is_dir: bool = True
    required_on_export: bool = True
    required_on_import: bool = True


SNAPSHOT_ITEMS: tuple[SnapshotItem, ...] = (
    SnapshotItem("DiskBasedCacheDirectory", MGO_DISK_CACHE_PATH),
    SnapshotItem("shared_prefs", MGO_PREFS_PATH),
    SnapshotItem("settings_ssaid.xml", SSAID_PATH, is_dir=False, required_on_export=False),
)

# Pfade, auf die beim Restore Owner/Group/Mode wieder angewendet werden
# (SSAID gehört dem System und bleibt unangetastet)
PERMISSION_TARGETS: tuple[str, ...] = (MGO_FILES_PATH, MGO_PREFS_PATH)


@dataclass
class SnapshotReport:
    """Ergebnis eines Exports/Imports."""
    backup_path: str
    permissions: Optional[FilePermissions] = None
    copied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# BackupArchiver
# =============================================================================

class BackupArchiver:
    """
    Usage:
        archiver = BackupArchiver(executor, FilePermissionManager(executor))
        path = archiver.backup_path_for("MGO_", "Hauptaccount")
        result = await archiver.export_snapshot(path)
        ...
        result = await archiver.import_snapshot(path)
    """

    def __init__(
        self,
        executor: Executor,
        permissions: FilePermissionManager,
        backup_root: str = BACKUP_ROOT,
        items: tuple[SnapshotItem, ...] = SNAPSHOT_ITEMS,
        permission_source: str = MGO_FILES_PATH,
    ):
        self._executor = executor
        self._permissions = permissions
        self._backup_root = backup_root
        self._items = items
        self._permission_source = permission_source

    @property
    def items(self) -> tuple[SnapshotItem, ...]:
        return self._items

    def backup_path_for(self, prefix: str, account_name: str) -> str:
        """<root>/<prefix><name>/ — immer mit abschließendem Slash."""
        return f"{self._backup_root.rstrip('/')}/{prefix}{account_name}/"

    # =========================================================================
    # Export: Live → Backup
    # =========================================================================

    async def export_snapshot(
        self,
        backup_path: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> Result[SnapshotReport]:
        report = SnapshotReport(backup_path=backup_path)

        # 1. Berechtigungen der Live-Quelle (Warnung bei Fehler)
        perms = await self._permissions.get_file_permissions_with_retry(self._permission_source)
        if perms.ok:
            report.permissions = perms.value
        else:
            report.warnings.append(f"Berechtigungen nicht gelesen: {perms.error.message}")
            logger.warning("Export %s: Berechtigungen nicht lesbar, fahre fort", backup_path)

        # 2. Zielverzeichnis
        created = await self._executor.execute(f"mkdir -p {quote_path(backup_path)}")
        if not created.ok:
            return Result.failure(
                ErrorKind.COPY_FAILED,
                f"Backup-Verzeichnis konnte nicht erstellt werden: {created.error.message}",
            )

        # 3. Einträge kopieren
        for item in self._items:
            if cancel is not None and cancel.is_set():
                return Result.failure(ErrorKind.COPY_FAILED, f"Export abgebrochen vor {item.name}")

            target = posixpath.join(backup_path, item.name)
            # Alten Snapshot-Eintrag ersetzen, sonst landet cp -r IN dem Ordner
            await self._executor.execute(f"rm -rf {quote_path(target)}")
            flags = "-r " if item.is_dir else ""
            copied = await self._executor.execute(
                f"cp {flags}{quote_path(item.live_path)} {quote_path(target)}"
            )

            if copied.ok:
                report.copied.append(item.name)
                logger.info("Export: %s → %s", item.live_path, target)
                continue

            detail = f"Kopieren fehlgeschlagen: {item.live_path} -> {target} ({copied.error.message})"
            if item.required_on_export:
                logger.error("Export %s: %s", backup_path, detail)
                return Result.failure(ErrorKind.COPY_FAILED, detail)
            report.warnings.append(detail)
            logger.warning("Export %s: %s (optional, fahre fort)", backup_path, detail)

        return Result.success(report)

    # =========================================================================
    # Import: Backup → Live
    # =========================================================================

    async def validate_snapshot(self, backup_path: str) -> Result[None]:
        """Prüft, dass alle für den Import nötigen Einträge im Backup existieren."""
        missing = []
        for item in self._items:
            if not item.required_on_import:
                continue
            source = posixpath.join(backup_path, item.name)
            test_flag = "-d" if item.is_dir else "-f"
            exists = await self._executor.execute(f"test {test_flag} {quote_path(source)}")
            if not exists.ok:
                missing.append(source)

        if missing:
            return Result.failure(ErrorKind.NOT_FOUND, f"Fehlende Backup-Dateien: {', '.join(missing)}")
        return Result.success(None)

    async def import_snapshot(
        self,
        backup_path: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> Result[SnapshotReport]:
        report = SnapshotReport(backup_path=backup_path)

        # 1. Aktuelle Live-Berechtigungen als Fallback für den Restore
        perms = await self._permissions.get_file_permissions(self._permission_source)
        if perms.ok:
            report.permissions = perms.value
        else:
            report.warnings.append(f"Live-Berechtigungen nicht gelesen: {perms.error.message}")

        for item in self._items:
            if cancel is not None and cancel.is_set():
                return Result.failure(ErrorKind.COPY_FAILED, f"Import abgebrochen vor {item.name}")

            source = posixpath.join(backup_path, item.name)

            if item.is_dir:
                removed = await self._executor.execute(f"rm -rf {quote_path(item.live_path)}")
                if not removed.ok:
                    report.warnings.append(f"Data-Pfad nicht gesäubert: {item.live_path}")
                await self._executor.execute(f"mkdir -p {quote_path(posixpath.dirname(item.live_path))}")
                # -T: Quelle WIRD das Ziel (kein shared_prefs/shared_prefs)
                copied = await self._executor.execute(
                    f"cp -rT {quote_path(source)} {quote_path(item.live_path)}"
                )
            else:
                copied = await self._executor.execute(f"cp {quote_path(source)} {quote_path(item.live_path)}")

            if not copied.ok:
                detail = f"Kopieren fehlgeschlagen: {source} -> {item.live_path} ({copied.error.message})"
                if item.required_on_import:
                    logger.error("Import %s: %s", backup_path, detail)
                    return Result.failure(ErrorKind.COPY_FAILED, detail)
                report.warnings.append(detail)
                continue

            report.copied.append(item.name)
            logger.info("Import: %s → %s", source, item.live_path)

        return Result.success(report)

    # =========================================================================
    # Verwaltung
    # =========================================================================

    async def remove_snapshot(self, backup_path: str) -> Result[None]:
        result = await self._executor.execute(f"rm -rf {quote_path(backup_path)}")
        if not result.ok:
            return Result.failure(result.error.kind, result.error.message)
        return Result.success(None)

    async def snapshot_exists(self, backup_path: str) -> bool:
        return (await self._executor.execute(f"test -d {quote_path(backup_path)}")).ok

    async def find_unique_account_name(
        self,
        base_name: str,
        prefix: str,
        name_taken: Callable[[str], Awaitable[bool]],
    ) -> str:
        """
        Hängt _1, _2, ... an bis weder die DB noch das Backup-Root
        den Namen kennt.
        """
        candidate = base_name
        suffix = 0
        while await name_taken(candidate) or await self.snapshot_exists(
            self.backup_path_for(prefix, candidate)
        ):
            suffix += 1
            candidate = f"{base_name}_{suffix}"
        return candidate
