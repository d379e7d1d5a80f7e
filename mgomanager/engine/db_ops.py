"""
Database Operations Layer
==========================

Repositories über HostDatabase. Jede schreibende Methode ist eine
atomare Transaktion.

Verwendung:
  - BackupFlow   → AccountRepository.create, get_by_name, LogRepository.add_log
  - RestoreFlow  → AccountRepository.get, update_last_played, LogRepository.add_log
  - DeleteFlow   → AccountRepository.delete, LogRepository
  - Exporter     → AccountRepository.list_all, LogRepository.log_info/log_error
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from mgomanager.config import LOCAL_TZ
from mgomanager.database import HostDatabase, db
from mgomanager.models.account import AccountCreate, AccountRead, AccountUpdate
from mgomanager.models.log import LogEntry, LogLevel

logger = logging.getLogger("mgo.db_ops")


def _now() -> str:
    """ISO-Timestamp in Europe/Berlin (CET/CEST)."""
    return datetime.now(LOCAL_TZ).strftime("%Y-%m-%dT%H:%M:%S")


# =============================================================================
# Accounts
# =============================================================================

class AccountRepository:
    """CRUD für die accounts-Tabelle."""

    def __init__(self, database: HostDatabase = db):
        self._db = database

    async def create(self, account: AccountCreate) -> AccountRead:
        now = _now()
        data = account.model_dump()
        columns = [*data.keys(), "created_at", "last_played_at"]
        values = [*data.values(), now, now]
        placeholders = ", ".join("?" for _ in columns)

        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                f"INSERT INTO accounts ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(values),
            )
            account_id = cursor.lastrowid

        logger.debug("Account erstellt: id=%d, name=%s", account_id, account.account_name)
        return await self.get(account_id)

    async def get(self, account_id: int) -> Optional[AccountRead]:
        async with self._db.connection() as conn:
            cursor = await conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = await cursor.fetchone()
        return AccountRead(**dict(row)) if row else None

    async def get_by_name(self, account_name: str) -> Optional[AccountRead]:
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM accounts WHERE account_name = ? LIMIT 1", (account_name,),
            )
            row = await cursor.fetchone()
        return AccountRead(**dict(row)) if row else None

    async def name_taken(self, account_name: str) -> bool:
        return await self.get_by_name(account_name) is not None

    async def list_all(self) -> list[AccountRead]:
        """Alle Accounts, zuletzt gespielte zuerst."""
        async with self._db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM accounts ORDER BY last_played_at DESC, id DESC"
            )
            rows = await cursor.fetchall()
        return [AccountRead(**dict(r)) for r in rows]

    async def update(self, account_id: int, changes: AccountUpdate) -> Optional[AccountRead]:
        fields: dict[str, Any] = changes.model_dump(exclude_unset=True)
        if not fields:
            return await self.get(account_id)

        updates = [f"{name} = ?" for name in fields]
        values = list(fields.values())
        updates.append("updated_at = ?")
        values.extend([_now(), account_id])

        async with self._db.transaction() as conn:
            await conn.execute(
                f"UPDATE accounts SET {', '.join(updates)} WHERE id = ?", tuple(values),
            )
        return await self.get(account_id)

    async def update_last_played(self, account_id: int) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                "UPDATE accounts SET last_played_at = ? WHERE id = ?", (_now(), account_id),
            )

    async def delete(self, account_id: int) -> bool:
        """Löscht den Datensatz. Returns: True wenn ein Datensatz entfernt wurde."""
        async with self._db.transaction() as conn:
            cursor = await conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            deleted = cursor.rowcount > 0
        logger.debug("Account %d gelöscht: %s", account_id, deleted)
        return deleted

    async def count(self) -> int:
        async with self._db.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM accounts")
            return (await cursor.fetchone())[0]


# =============================================================================
# Logs (append-only)
# =============================================================================

class LogRepository:
    """Log-Sink: (level, category, message) — wird nie verändert, nur ergänzt."""

    def __init__(self, database: HostDatabase = db):
        self._db = database

    async def add_log(
        self,
        level: LogLevel | str,
        category: str,
        message: str,
        account_name: Optional[str] = None,
        details: Optional[str] = None,
    ) -> int:
        level_value = LogLevel(level).value
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """INSERT INTO logs (timestamp, level, category, message, account_name, details)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (_now(), level_value, category, message, account_name, details),
            )
            return cursor.lastrowid

    async def log_info(self, category: str, message: str, **kwargs) -> int:
        return await self.add_log(LogLevel.INFO, category, message, **kwargs)

    async def log_warning(self, category: str, message: str, **kwargs) -> int:
        return await self.add_log(LogLevel.WARNING, category, message, **kwargs)

    async def log_error(self, category: str, message: str, **kwargs) -> int:
        return await self.add_log(LogLevel.ERROR, category, message, **kwargs)

    async def recent(
        self,
        limit: int = 100,
        category: Optional[str] = None,
        account_name: Optional[str] = None,
    ) -> list[LogEntry]:
        """Neueste Einträge zuerst, optional gefiltert."""
        conditions: list[str] = []
        values: list[Any] = []
        if category:
            conditions.append("category = ?")
            values.append(category)
        if account_name:
            conditions.append("account_name = ?")
            values.append(account_name)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        values.append(limit)

        async with self._db.connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM logs {where} ORDER BY id DESC LIMIT ?", tuple(values),
            )
            rows = await cursor.fetchall()
        return [LogEntry(**dict(r)) for r in rows]
