"""
SQLite Database Engine
=======================

2 Tabellen:
  1. accounts — gesicherte Spiel-Accounts (Backup-Pfad, Berechtigungen, IDs)
  2. logs     — append-only Protokoll aller Backups/Restores/Exports

Features:
  - Async SQLite via aiosqlite (WAL-Mode)
  - Automatische Schema-Migration (ALTER TABLE für neue Spalten)
  - Atomare Transaktionen
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import aiosqlite

from mgomanager.config import DATABASE_PATH

logger = logging.getLogger("mgo.database")


# =============================================================================
# SQL Schema: Tabelle 1, accounts
# =============================================================================

_SQL_CREATE_ACCOUNTS = """
CREATE TABLE IF NOT EXISTS accounts (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,

    -- Name (Anzeige = prefix || account_name)
    account_name        TEXT NOT NULL,
    prefix              TEXT NOT NULL DEFAULT '',

    -- Backup
    backup_path         TEXT NOT NULL,
    file_owner          TEXT NOT NULL DEFAULT '',
    file_group          TEXT NOT NULL DEFAULT '',
    file_permissions    TEXT NOT NULL DEFAULT '',

    -- Geräte-IDs
    user_id             TEXT,
    ssaid               TEXT,
    gaid                TEXT,
    device_token        TEXT,
    app_set_id          TEXT,

    -- Operator-Flags
    sus_level           INTEGER NOT NULL DEFAULT 0 CHECK (sus_level BETWEEN 0 AND 3),
    has_error           INTEGER NOT NULL DEFAULT 0,

    -- Facebook
    has_facebook_link   INTEGER NOT NULL DEFAULT 0,
    fb_username         TEXT,
    fb_password         TEXT,
    fb_2fa              TEXT,
    fb_temp_mail        TEXT,

    notes               TEXT,

    -- Timestamps
    created_at          TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S', 'now')),
    updated_at          TEXT,
    last_played_at      TEXT
);
"""

# =============================================================================
# SQL Schema: Tabelle 2, logs
# =============================================================================

_SQL_CREATE_LOGS = """
CREATE TABLE IF NOT EXISTS logs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp           TEXT NOT NULL,
    level               TEXT NOT NULL CHECK (level IN ('INFO', 'WARNING', 'ERROR')),
    category            TEXT NOT NULL,
    message             TEXT NOT NULL,
    account_name        TEXT,
    details             TEXT
);
"""

_SQL_CREATE_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_accounts_name     ON accounts(account_name);
CREATE INDEX IF NOT EXISTS idx_accounts_user_id  ON accounts(user_id);
CREATE INDEX IF NOT EXISTS idx_logs_time         ON logs(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_logs_category     ON logs(category);
"""

# =============================================================================
# Schema-Migration: Neue Spalten zu bestehenden Tabellen hinzufügen
# =============================================================================

_SQL_MIGRATIONS = [
    "ALTER TABLE accounts ADD COLUMN notes TEXT",
    "ALTER TABLE accounts ADD COLUMN updated_at TEXT",
    "ALTER TABLE accounts ADD COLUMN app_set_id TEXT",
]


# =============================================================================
# Database Engine
# =============================================================================

class HostDatabase:
    """
    Async SQLite Database Engine.

    Usage:
        db = HostDatabase()
        await db.initialize()           # Tabellen erstellen / migrieren

        async with db.connection() as conn:
            cursor = await conn.execute("SELECT * FROM accounts")
            rows = await cursor.fetchall()

        await db.close()
    """

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = str(db_path or DATABASE_PATH)
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """
        Initialisiert die Datenbank:
          1. Verbindung herstellen
          2. WAL-Mode aktivieren
          3. Tabellen erstellen (IF NOT EXISTS)
          4. Schema-Migration ausführen
          5. Indizes erstellen
        """
        logger.info("Initialisiere Datenbank: %s", self._db_path)

        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._connection.executescript(_SQL_CREATE_ACCOUNTS + _SQL_CREATE_LOGS)
        await self._connection.commit()

        await self._run_migrations()

        await self._connection.executescript(_SQL_CREATE_INDEXES)
        await self._connection.commit()

    async def _run_migrations(self) -> None:
        """
        Führt ALTER TABLE Migrationen aus.

        Existiert die Spalte bereits, meldet SQLite "duplicate column" —
        das ist der Normalfall und macht die Migration idempotent.
        """
        migrated = 0
        for sql in _SQL_MIGRATIONS:
            try:
                await self._connection.execute(sql)
                migrated += 1
            except sqlite3.OperationalError as e:
                if "duplicate column" not in str(e).lower():
                    raise

        if migrated > 0:
            await self._connection.commit()
            logger.info("Schema-Migration: %d neue Spalten hinzugefügt", migrated)

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """Context-Manager für eine Datenbankverbindung (read)."""
        if self._connection is None:
            raise RuntimeError("Datenbank nicht initialisiert — await db.initialize() zuerst!")
        yield self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[aiosqlite.Connection, None]:
        """
        Atomare Transaktion (write).

        Bei Exception: Rollback.
        Bei Erfolg: Commit.
        """
        if self._connection is None:
            raise RuntimeError("Datenbank nicht initialisiert!")
        try:
            await self._connection.execute("BEGIN")
            yield self._connection
            await self._connection.commit()
        except Exception:
            await self._connection.rollback()
            raise

    async def checkpoint(self) -> None:
        """Schreibt das WAL in die Hauptdatei (vor dem Kopieren der DB-Datei)."""
        if self._connection is None:
            return
        await self._connection.execute("PRAGMA wal_checkpoint(TRUNCATE)")

    async def close(self) -> None:
        """Schliesst die Datenbankverbindung."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.info("Datenbank geschlossen.")

    @staticmethod
    def row_to_dict(row: aiosqlite.Row) -> dict:
        """Konvertiert eine aiosqlite.Row in ein dict."""
        return dict(row)


# =============================================================================
# Globale Singleton-Instanz
# =============================================================================

db = HostDatabase()
