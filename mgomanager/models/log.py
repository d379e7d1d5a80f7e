"""
Log-Einträge (append-only) — die für den User sichtbare Protokollspur
jedes Backups/Restores/Exports. Ergänzt das Python-Logging.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class LogLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogEntry(BaseModel):
    id: int
    timestamp: str
    level: LogLevel
    category: str
    message: str
    account_name: Optional[str] = None
    details: Optional[str] = None

    model_config = {"from_attributes": True}
