"""
MGO Manager — Export / Import
===============================

Export-Archiv mgo_export_<YYYYMMDD_HHMMSS>.zip im Export-Verzeichnis:

  database/<db-datei>          ← SQLite-Datenbank (nach WAL-Checkpoint)
  backups/<prefix><name>/...   ← alle Account-Verzeichnisse (ohne "archive")
  accounts.json                ← Metadaten aller Accounts

Ist SSH-Auto-Upload aktiv, wird das Archiv danach gespiegelt. Ein
Upload-Fehler wird geloggt und in der Meldung genannt, der Export gilt
trotzdem als erfolgreich.

Import: nimmt das NEUESTE mgo_export_*.zip, schreibt database/ ins
DB-Verzeichnis und backups/ ins Backup-Root. Einträge, die aus ihrem
Zielverzeichnis ausbrechen (../), werden abgelehnt.

Zip-Arbeit läuft per asyncio.to_thread, damit der Event-Loop frei bleibt.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import zipfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Optional

from mgomanager.config import (
    ARCHIVE_DIR_NAME,
    BACKUP_ROOT,
    EXPORT_ACCOUNTS_JSON,
    EXPORT_BACKUPS_FOLDER,
    EXPORT_DB_FOLDER,
    EXPORT_DIR,
    EXPORT_FILE_PREFIX,
    LOCAL_TZ,
)
from mgomanager.database import HostDatabase, db
from mgomanager.engine.db_ops import AccountRepository, LogRepository
from mgomanager.engine.ssh_sync import SSHSyncService
from mgomanager.models.result import ErrorKind, Result

logger = logging.getLogger("mgo.engine.exporter")

EXPORT_CATEGORY = "EXPORT"
IMPORT_CATEGORY = "IMPORT"


class ImportRejectedError(Exception):
    """Zip-Eintrag würde außerhalb des Zielverzeichnisses landen."""


def _safe_destination(root: Path, relative: str) -> Path:
    parts = PurePosixPath(relative).parts
    if not parts or any(p in ("..", "") for p in parts) or PurePosixPath(relative).is_absolute():
        raise ImportRejectedError(f"Ungültiger Zip-Eintrag: {relative!r}")
    dest = (root / Path(*parts)).resolve()
    if not dest.is_relative_to(root.resolve()):
        raise ImportRejectedError(f"Zip-Eintrag außerhalb des Ziels: {relative!r}")
    return dest


def newest_export(export_dir: Path) -> Optional[Path]:
    if not export_dir.is_dir():
        return None
    archives = [
        p for p in export_dir.iterdir()
        if p.is_file() and p.name.startswith(EXPORT_FILE_PREFIX) and p.suffix == ".zip"
    ]
    if not archives:
        return None
    return max(archives, key=lambda p: p.stat().st_mtime)


class ExportService:
    """
    Usage:
        service = ExportService(AccountRepository(), LogRepository(), ssh=SSHSyncService(cfg))
        result = await service.export_data()
        if result.ok:
            print(result.value)     # "Export gespeichert unter: ..."
    """

    def __init__(
        self,
        accounts: AccountRepository,
        logs: LogRepository,
        ssh: Optional[SSHSyncService] = None,
        database: HostDatabase = db,
        backup_root: str | Path = BACKUP_ROOT,
        export_dir: str | Path = EXPORT_DIR,
        auto_upload: Optional[bool] = None,
    ):
        self._accounts = accounts
        self._logs = logs
        self._ssh = ssh
        self._database = database
        self._backup_root = Path(backup_root)
        self._export_dir = Path(export_dir)
        if auto_upload is None:
            auto_upload = bool(ssh and ssh.config.auto_upload_on_export)
        self._auto_upload = auto_upload

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    # =========================================================================
    # Export
    # =========================================================================

    async def export_data(self) -> Result[str]:
        await self._logs.log_info(EXPORT_CATEGORY, "Starte Daten-Export")
        try:
            accounts = await self._accounts.list_all()
            accounts_json = json.dumps(
                [a.model_dump(mode="json", exclude={"full_name"}) for a in accounts],
                indent=2,
                ensure_ascii=False,
            )
            await self._database.checkpoint()

            timestamp = datetime.now(LOCAL_TZ).strftime("%Y%m%d_%H%M%S")
            zip_path = self._export_dir / f"{EXPORT_FILE_PREFIX}{timestamp}.zip"
            added = await asyncio.to_thread(self._write_archive, zip_path, accounts_json)
        except OSError as e:
            logger.error("Export fehlgeschlagen: %s", e)
            await self._logs.log_error(EXPORT_CATEGORY, f"Export fehlgeschlagen: {e}")
            return Result.failure(ErrorKind.COPY_FAILED, f"Export fehlgeschlagen: {e}")

        await self._logs.log_info(
            EXPORT_CATEGORY,
            f"Export abgeschlossen: {zip_path} ({added} Dateien, {len(accounts)} Accounts)",
        )
        logger.info("Export erstellt: %s (%d Dateien)", zip_path, added)

        if not (self._auto_upload and self._ssh and self._ssh.is_enabled()):
            return Result.success(f"Export gespeichert unter:\n{zip_path}")

        await self._logs.log_info(EXPORT_CATEGORY, "Auto-Upload zum SSH-Server...")
        uploaded = await self._ssh.upload(zip_path)
        if uploaded.success:
            await self._logs.log_info(EXPORT_CATEGORY, "Auto-Upload erfolgreich")
            return Result.success(f"Export gespeichert und hochgeladen:\n{zip_path}")

        await self._logs.log_error(EXPORT_CATEGORY, f"Auto-Upload fehlgeschlagen: {uploaded.message}")
        return Result.success(
            f"Export gespeichert (Upload fehlgeschlagen: {uploaded.message}):\n{zip_path}"
        )

    def _write_archive(self, zip_path: Path, accounts_json: str) -> int:
        self._export_dir.mkdir(parents=True, exist_ok=True)
        # Erst unter .part schreiben: newest_export() sieht nur fertige .zip-Dateien
        part_path = zip_path.with_name(zip_path.name + ".part")
        try:
            added = self._fill_archive(part_path, accounts_json)
            part_path.replace(zip_path)
        except Exception:
            part_path.unlink(missing_ok=True)
            raise
        return added

    def _fill_archive(self, target: Path, accounts_json: str) -> int:
        added = 0
        with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            db_file = Path(self._database.path)
            if db_file.is_file():
                zf.write(db_file, f"{EXPORT_DB_FOLDER}/{db_file.name}")
                added += 1

            if self._backup_root.is_dir():
                for account_dir in sorted(self._backup_root.iterdir()):
                    if not account_dir.is_dir() or account_dir.name == ARCHIVE_DIR_NAME:
                        continue
                    for file in sorted(account_dir.rglob("*")):
                        if file.is_file():
                            rel = file.relative_to(self._backup_root).as_posix()
                            zf.write(file, f"{EXPORT_BACKUPS_FOLDER}/{rel}")
                            added += 1

            zf.writestr(EXPORT_ACCOUNTS_JSON, accounts_json)
        return added

    # =========================================================================
    # Import
    # =========================================================================

    async def import_data(self) -> Result[str]:
        await self._logs.log_info(IMPORT_CATEGORY, "Starte Daten-Import")

        zip_path = await asyncio.to_thread(newest_export, self._export_dir)
        if zip_path is None:
            message = f"Keine Export-Datei gefunden in {self._export_dir}"
            await self._logs.log_error(IMPORT_CATEGORY, message)
            return Result.failure(ErrorKind.NOT_FOUND, message)

        await self._logs.log_info(IMPORT_CATEGORY, f"Importiere aus: {zip_path.name}")

        # Die offene Verbindung darf nicht unter der neuen DB-Datei weiterlaufen
        await self._database.close()
        try:
            try:
                db_files, backup_files = await asyncio.to_thread(self._extract_archive, zip_path)
            finally:
                await self._database.initialize()
        except (OSError, zipfile.BadZipFile, ImportRejectedError) as e:
            logger.error("Import fehlgeschlagen: %s", e)
            await self._logs.log_error(IMPORT_CATEGORY, f"Import fehlgeschlagen: {e}")
            if isinstance(e, (zipfile.BadZipFile, ImportRejectedError)):
                return Result.failure(ErrorKind.PARSE_FAILED, f"Import fehlgeschlagen: {e}")
            return Result.failure(ErrorKind.COPY_FAILED, f"Import fehlgeschlagen: {e}")

        message = f"Import abgeschlossen: {db_files} DB-Dateien, {backup_files} Backup-Dateien"
        await self._logs.log_info(IMPORT_CATEGORY, message)
        logger.info("Import aus %s: %s", zip_path, message)
        return Result.success(message)

    def _extract_archive(self, zip_path: Path) -> tuple[int, int]:
        db_dir = Path(self._database.path).parent
        db_files = backup_files = 0

        with zipfile.ZipFile(zip_path) as zf:
            entries = zf.infolist()
            # Erst alles prüfen, dann schreiben: ein böser Eintrag verwirft das ganze Archiv
            plan: list[tuple[zipfile.ZipInfo, Path, bool]] = []
            for info in entries:
                name = info.filename
                if name.startswith(f"{EXPORT_DB_FOLDER}/"):
                    rel = name[len(EXPORT_DB_FOLDER) + 1:]
                    if rel:
                        plan.append((info, _safe_destination(db_dir, rel), True))
                elif name.startswith(f"{EXPORT_BACKUPS_FOLDER}/"):
                    rel = name[len(EXPORT_BACKUPS_FOLDER) + 1:]
                    if rel:
                        plan.append((info, _safe_destination(self._backup_root, rel.rstrip("/")), False))

            for info, dest, is_db in plan:
                if info.is_dir():
                    dest.mkdir(parents=True, exist_ok=True)
                    continue
                dest.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(info) as src, open(dest, "wb") as out:
                    shutil.copyfileobj(src, out)
                if is_db:
                    db_files += 1
                    # Altes WAL gehört nicht zur importierten DB
                    for suffix in ("-wal", "-shm"):
                        Path(f"{dest}{suffix}").unlink(missing_ok=True)
                else:
                    backup_files += 1

        return db_files, backup_files
