"""
Logs API
=========

  GET /api/logs?limit=100&category=RESTORE&account_name=MGO_Main
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from mgomanager.api.deps import get_logs
from mgomanager.engine.db_ops import LogRepository

router = APIRouter(prefix="/api/logs", tags=["Logs"])


@router.get("")
async def list_logs(
    limit: int = Query(default=100, ge=1, le=1000),
    category: Optional[str] = None,
    account_name: Optional[str] = None,
    logs: LogRepository = Depends(get_logs),
):
    """Neueste Einträge zuerst."""
    entries = await logs.recent(limit=limit, category=category, account_name=account_name)
    return {"logs": [e.model_dump() for e in entries], "count": len(entries)}
