"""
MGO Manager — SSH Sync (Remote-Spiegel)
=========================================

Spiegelt Export-Archive (mgo_export_*.zip) per SFTP auf einen SSH-Server.

Rein additiv zum lokalen Workflow:
  - nur auf expliziten Wunsch (Test-Button, Upload/Download) oder beim
    Export wenn auto_upload_on_export gesetzt ist
  - blockiert oder wiederholt NIE lokale Backup/Restore-Operationen

Fehlerklassen (getrennt, damit der Aufrufer differenziert anzeigen kann):
  NOT_CONFIGURED     Host/Username/Credential fehlt oder Sync deaktiviert
  CONNECTION_FAILED  Verbindungsaufbau oder Authentifizierung
  TRANSFER_FAILED    SFTP-Operation (put/get/readdir)

Auth-Methoden: key_only, password_only, try_both (Key zuerst, dann Passwort).
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import asyncssh

from mgomanager.config import EXPORT_DIR, EXPORT_FILE_PREFIX, TIMING
from mgomanager.models.result import EngineError, ErrorKind
from mgomanager.models.ssh import AuthMethod, SSHConfig

logger = logging.getLogger("mgo.engine.ssh_sync")


@dataclass
class SyncResult:
    success: bool
    message: str = ""
    error: Optional[EngineError] = None
    files: list[dict] = field(default_factory=list)

    @classmethod
    def ok(cls, message: str, files: Optional[list[dict]] = None) -> "SyncResult":
        return cls(success=True, message=message, files=files or [])

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "SyncResult":
        return cls(success=False, message=message, error=EngineError(kind, message))


class SSHSyncService:
    """
    Usage:
        sync = SSHSyncService(SSHConfig.from_env())
        result = await sync.test_connection()
        result = await sync.upload("/storage/emulated/0/mgo/exports/mgo_export_20250101_120000.zip")
    """

    def __init__(
        self,
        config: SSHConfig,
        connector: Optional[Callable[..., Awaitable[Any]]] = None,
    ):
        self._config = config
        self._connect_fn = connector or asyncssh.connect

    @property
    def config(self) -> SSHConfig:
        return self._config

    def is_enabled(self) -> bool:
        return self._config.enabled and self._config.is_configured

    # =========================================================================
    # Verbindung
    # =========================================================================

    def _connect_options(self) -> dict[str, Any]:
        cfg = self._config
        options: dict[str, Any] = {
            "port": cfg.port,
            "username": cfg.username,
            "known_hosts": None,
            "connect_timeout": TIMING.SSH_CONNECT_TIMEOUT,
        }
        use_key = cfg.auth_method in (AuthMethod.KEY_ONLY, AuthMethod.TRY_BOTH) and cfg.has_key
        use_password = cfg.auth_method in (AuthMethod.PASSWORD_ONLY, AuthMethod.TRY_BOTH) and cfg.has_password

        # asyncssh probiert publickey vor password, sofern beides gesetzt ist
        options["client_keys"] = [cfg.private_key_path] if use_key else None
        if use_password:
            options["password"] = cfg.password
        return options

    def _check_configured(self) -> Optional[SyncResult]:
        if not self._config.enabled:
            return SyncResult.fail(ErrorKind.NOT_CONFIGURED, "SSH-Sync ist deaktiviert")
        missing = self._config.missing_settings()
        if missing:
            return SyncResult.fail(
                ErrorKind.NOT_CONFIGURED,
                f"SSH nicht konfiguriert (fehlt: {', '.join(missing)})",
            )
        return None

    async def _with_sftp(
        self,
        operation_name: str,
        operation: Callable[[Any], Awaitable[SyncResult]],
    ) -> SyncResult:
        """Verbindet, öffnet einen SFTP-Client und führt operation(sftp) aus."""
        not_configured = self._check_configured()
        if not_configured:
            return not_configured

        host = self._config.host
        try:
            conn = await self._connect_fn(host, **self._connect_options())
        except (asyncssh.Error, OSError, asyncio.TimeoutError) as e:
            logger.warning("SSH %s: Verbindung zu %s fehlgeschlagen: %s", operation_name, host, e)
            return SyncResult.fail(
                ErrorKind.CONNECTION_FAILED,
                f"Verbindung zu {host}:{self._config.port} fehlgeschlagen: {e}",
            )

        async with conn:
            try:
                async with conn.start_sftp_client() as sftp:
                    return await operation(sftp)
            except (asyncssh.Error, OSError) as e:
                logger.warning("SSH %s: Transfer fehlgeschlagen: %s", operation_name, e)
                return SyncResult.fail(ErrorKind.TRANSFER_FAILED, f"{operation_name} fehlgeschlagen: {e}")

    # =========================================================================
    # Public API
    # =========================================================================

    async def test_connection(self) -> SyncResult:
        remote_path = self._config.remote_path

        async def _probe(sftp) -> SyncResult:
            if await sftp.isdir(remote_path):
                return SyncResult.ok(f"Verbindung erfolgreich, {remote_path} vorhanden")
            return SyncResult.ok(f"Verbindung erfolgreich, {remote_path} wird beim Upload angelegt")

        result = await self._with_sftp("Verbindungstest", _probe)
        if result.success:
            logger.info("SSH Verbindungstest OK: %s@%s", self._config.username, self._config.host)
        return result

    async def upload(self, local_archive_path: str | Path) -> SyncResult:
        not_configured = self._check_configured()
        if not_configured:
            return not_configured

        local = Path(local_archive_path)
        if not local.is_file():
            return SyncResult.fail(ErrorKind.TRANSFER_FAILED, f"Lokale Datei nicht gefunden: {local}")

        remote_path = self._config.remote_path
        remote_file = posixpath.join(remote_path, local.name)

        async def _put(sftp) -> SyncResult:
            await sftp.makedirs(remote_path, exist_ok=True)
            await sftp.put(str(local), remote_file)
            logger.info("SFTP Upload: %s → %s", local, remote_file)
            return SyncResult.ok(f"Hochgeladen: {remote_file}")

        return await self._with_sftp("Upload", _put)

    async def download(self, remote_name: str, local_dir: str | Path | None = None) -> SyncResult:
        if not remote_name or "/" in remote_name or remote_name in (".", ".."):
            return SyncResult.fail(ErrorKind.TRANSFER_FAILED, f"Ungültiger Dateiname: {remote_name!r}")

        target_dir = Path(local_dir) if local_dir else EXPORT_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        local_file = target_dir / remote_name
        remote_file = posixpath.join(self._config.remote_path, remote_name)

        async def _get(sftp) -> SyncResult:
            await sftp.get(remote_file, str(local_file))
            logger.info("SFTP Download: %s → %s", remote_file, local_file)
            return SyncResult.ok(f"Heruntergeladen: {local_file}")

        return await self._with_sftp("Download", _get)

    async def list_remote(self) -> SyncResult:
        """Export-Archive auf dem Server, neueste zuerst."""
        remote_path = self._config.remote_path

        async def _list(sftp) -> SyncResult:
            files = []
            for entry in await sftp.readdir(remote_path):
                if entry.filename.startswith(EXPORT_FILE_PREFIX) and entry.filename.endswith(".zip"):
                    files.append({
                        "filename": entry.filename,
                        "size_bytes": entry.attrs.size or 0,
                        "mtime": entry.attrs.mtime or 0,
                    })
            files.sort(key=lambda f: f["mtime"], reverse=True)
            return SyncResult.ok(f"{len(files)} Archive gefunden", files=files)

        return await self._with_sftp("Auflisten", _list)
