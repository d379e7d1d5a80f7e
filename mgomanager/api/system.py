"""
System API
===========

  GET /api/system/check   — Root-Zugriff und installierte Ziel-App prüfen

Wird vor dem ersten Backup/Restore aufgerufen. Keine Schreibzugriffe,
deshalb ohne device_lock.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from mgomanager.api.deps import get_executor
from mgomanager.config import MGO_PACKAGE
from mgomanager.shell.executor import Executor, has_root, is_package_installed

router = APIRouter(prefix="/api/system", tags=["System"])


@router.get("/check")
async def system_check(executor: Executor = Depends(get_executor)):
    root = await has_root(executor)
    # Ohne Root liefert `pm` über su nichts Verwertbares
    installed = await is_package_installed(executor) if root else False
    return {
        "root": root,
        "package": MGO_PACKAGE,
        "package_installed": installed,
        "ready": root and installed,
    }
