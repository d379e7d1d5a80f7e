"""
Sync API (Export/Import + SSH-Spiegel)
========================================

Endpoints:
  GET  /api/sync/status    — SSH-Konfiguration (ohne Secrets)
  POST /api/sync/test      — Verbindungstest
  GET  /api/sync/remote    — Export-Archive auf dem Server (neueste zuerst)
  POST /api/sync/upload    — Lokales Archiv hochladen (Default: neuestes)
  POST /api/sync/download  — Archiv vom Server ins Export-Verzeichnis holen
  POST /api/sync/export    — mgo_export_<ts>.zip erstellen (+ Auto-Upload)
  POST /api/sync/import    — Neuestes Export-Archiv einspielen
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from mgomanager.api.deps import (
    device_lock,
    ensure_idle,
    get_exporter,
    get_ssh,
    raise_for_error,
)
from mgomanager.engine.exporter import ExportService, newest_export
from mgomanager.engine.ssh_sync import SSHSyncService, SyncResult

logger = logging.getLogger("mgo.api.sync")

router = APIRouter(prefix="/api/sync", tags=["Sync"])


class UploadRequest(BaseModel):
    filename: Optional[str] = Field(default=None, description="Archiv im Export-Verzeichnis (leer = neuestes)")


class DownloadRequest(BaseModel):
    filename: str = Field(..., min_length=1)


def _sync_response(result: SyncResult) -> dict:
    if not result.success:
        raise_for_error(result.error)
    return {"status": "ok", "message": result.message, "files": result.files}


# =============================================================================
# SSH
# =============================================================================

@router.get("/status")
async def sync_status(ssh: SSHSyncService = Depends(get_ssh)):
    cfg = ssh.config
    return {
        "enabled": cfg.enabled,
        "configured": cfg.is_configured,
        "missing": cfg.missing_settings(),
        "host": cfg.host or None,
        "port": cfg.port,
        "username": cfg.username or None,
        "auth_method": cfg.auth_method.value,
        "remote_path": cfg.remote_path,
        "auto_upload_on_export": cfg.auto_upload_on_export,
    }


@router.post("/test")
async def test_connection(ssh: SSHSyncService = Depends(get_ssh)):
    return _sync_response(await ssh.test_connection())


@router.get("/remote")
async def list_remote(ssh: SSHSyncService = Depends(get_ssh)):
    return _sync_response(await ssh.list_remote())


@router.post("/upload")
async def upload_archive(
    req: UploadRequest | None = None,
    ssh: SSHSyncService = Depends(get_ssh),
    exporter: ExportService = Depends(get_exporter),
):
    if req and req.filename:
        if "/" in req.filename:
            raise HTTPException(status_code=400, detail=f"Ungültiger Dateiname: {req.filename}")
        archive = exporter.export_dir / req.filename
    else:
        archive = newest_export(exporter.export_dir)
        if archive is None:
            raise HTTPException(status_code=404, detail="Kein Export-Archiv vorhanden")
    return _sync_response(await ssh.upload(archive))


@router.post("/download")
async def download_archive(
    req: DownloadRequest,
    ssh: SSHSyncService = Depends(get_ssh),
    exporter: ExportService = Depends(get_exporter),
):
    return _sync_response(await ssh.download(req.filename, exporter.export_dir))


# =============================================================================
# Export / Import
# =============================================================================

@router.post("/export")
async def export_data(exporter: ExportService = Depends(get_exporter)):
    result = await exporter.export_data()
    if not result.ok:
        raise_for_error(result.error)
    return {"status": "ok", "message": result.value}


@router.post("/import")
async def import_data(exporter: ExportService = Depends(get_exporter)):
    ensure_idle()
    async with device_lock:
        result = await exporter.import_data()
    if not result.ok:
        raise_for_error(result.error)
    return {"status": "ok", "message": result.value}
