"""
MGO Manager — FastAPI Entrypoint
==================================

Startet den Account-Manager mit:
  - SQLite DB Initialisierung
  - API-Router (Accounts, Sync, Logs)
  - Health Check

Start:
    uvicorn mgomanager.main:app --host 0.0.0.0 --port 8000

Oder:
    python -m mgomanager.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mgomanager.config import (
    API_HOST,
    API_PORT,
    API_TITLE,
    API_VERSION,
    BACKUP_ROOT,
    DATABASE_PATH,
    EXECUTION_MODE,
    LOCAL_TZ,
    LOG_FILE,
)
from mgomanager.database import db

# =============================================================================
# Logging Setup: MUSS vor allen anderen Modul-Imports passieren
# =============================================================================


class _BerlinFormatter(logging.Formatter):
    """Log-Formatter mit expliziter Europe/Berlin Zeitzone (CET/CEST)."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created, tz=LOCAL_TZ)
        if datefmt:
            return ct.strftime(datefmt)
        return ct.strftime("%Y-%m-%d %H:%M:%S")


_console_handler = logging.StreamHandler()
_console_handler.setFormatter(
    _BerlinFormatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
)
logging.root.addHandler(_console_handler)
logging.root.setLevel(logging.INFO)

# Persistenter File-Logger: 10 MB pro Datei, 3 alte Dateien (mgo.log.1, .2, .3)
_file_handler = RotatingFileHandler(
    str(LOG_FILE),
    maxBytes=10_000_000,
    backupCount=3,
    encoding="utf-8",
)
_file_handler.setFormatter(
    _BerlinFormatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
)
_file_handler.setLevel(logging.DEBUG)
logging.root.addHandler(_file_handler)

logger = logging.getLogger("mgo.main")


# =============================================================================
# Lifespan (Startup / Shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application Lifespan:
      - Startup:  DB initialisieren
      - Shutdown: DB sauber schliessen
    """
    logger.info("=" * 60)
    logger.info("  %s v%s (Modus: %s)", API_TITLE, API_VERSION, EXECUTION_MODE)
    logger.info("  Database: %s", DATABASE_PATH)
    logger.info("  Backups:  %s", BACKUP_ROOT)
    logger.info("  API: http://%s:%d", API_HOST, API_PORT)
    logger.info("=" * 60)

    await db.initialize()
    logger.info("MGO Manager bereit.")

    yield

    logger.info("Shutdown: Schliesse Datenbank...")
    await db.close()
    logger.info("MGO Manager gestoppt.")


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    description=(
        "Backup, Restore und Verwaltung von Monopoly-GO-Accounts "
        "auf einem gerooteten Android-Gerät."
    ),
    lifespan=lifespan,
)

from mgomanager.api.accounts import router as accounts_router  # noqa: E402
from mgomanager.api.deps import GENERIC_ERROR  # noqa: E402
from mgomanager.api.logs import router as logs_router  # noqa: E402
from mgomanager.api.sync import router as sync_router  # noqa: E402
from mgomanager.api.system import router as system_router  # noqa: E402

app.include_router(accounts_router)
app.include_router(sync_router)
app.include_router(logs_router)
app.include_router(system_router)


# =============================================================================
# Health Check
# =============================================================================

@app.get("/api/health", tags=["System"])
async def health_check():
    """Health Check: Prüft DB-Verbindung."""
    try:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM accounts")
            account_count = (await cursor.fetchone())[0]
            cursor = await conn.execute("SELECT COUNT(*) FROM logs")
            log_count = (await cursor.fetchone())[0]

        return {
            "status": "healthy",
            "database": "connected",
            "mode": EXECUTION_MODE,
            "accounts": account_count,
            "logs": log_count,
        }
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": str(e)},
        )


# =============================================================================
# Globaler Exception Handler
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unbehandelte Exceptions: Details ins Log, nach außen nur eine generische Meldung."""
    logger.error("Unhandled exception on %s: %s", request.url, exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "detail": GENERIC_ERROR,
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mgomanager.main:app",
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
