"""
Gemeinsame Test-Fakes
======================

  FakeExecutor          — zeichnet Befehle auf, Antworten per Regex-Regel
  FakeAccountRepository — In-Memory accounts-Tabelle
  FakeLogRepository     — sammelt Log-Einträge

Alle drei können eine gemeinsame events-Liste füllen, um die Reihenfolge
von Shell-Befehlen und DB-Aufrufen prüfen zu können.
"""

from __future__ import annotations

import os
import re
import tempfile
from typing import Optional

import pytest

# Vor dem ersten mgomanager-Import: Log-Datei und DB nicht ins Projekt-Root schreiben
os.environ.setdefault("MGO_LOG_FILE", os.path.join(tempfile.gettempdir(), "mgo-test.log"))
os.environ.setdefault("MGO_DATABASE_PATH", os.path.join(tempfile.gettempdir(), "mgo-test.db"))

from mgomanager.models.account import AccountCreate, AccountRead, AccountUpdate  # noqa: E402
from mgomanager.models.log import LogEntry, LogLevel  # noqa: E402
from mgomanager.models.result import CommandResult, ErrorKind, Result


# =============================================================================
# Executor
# =============================================================================

class FakeExecutor:
    """
    Regeln werden per re.search gegen den Befehl geprüft, die zuletzt
    hinzugefügte passende Regel gewinnt. Ohne Treffer: Erfolg mit "".
    """

    def __init__(self, events: Optional[list] = None):
        self.commands: list[str] = []
        self._rules: list[tuple[re.Pattern, CommandResult]] = []
        self._events = events

    def on(self, pattern: str, output: str) -> "FakeExecutor":
        self._rules.append((re.compile(pattern), Result.success(output)))
        return self

    def fail(self, pattern: str, message: str = "Command failed: boom") -> "FakeExecutor":
        self._rules.append((re.compile(pattern), Result.failure(ErrorKind.COMMAND_FAILED, message)))
        return self

    async def execute(self, command: str) -> CommandResult:
        self.commands.append(command)
        if self._events is not None:
            self._events.append(("shell", command))
        for pattern, result in reversed(self._rules):
            if pattern.search(command):
                return result
        return Result.success("")

    def ran(self, prefix: str) -> list[str]:
        return [c for c in self.commands if c.startswith(prefix)]


# =============================================================================
# Repositories
# =============================================================================

class FakeAccountRepository:
    def __init__(self, events: Optional[list] = None):
        self.accounts: dict[int, AccountRead] = {}
        self.delete_calls: list[int] = []
        self.last_played_updates: list[int] = []
        self._next_id = 1
        self._events = events

    def add(self, **fields) -> AccountRead:
        """Synchrones Seeding für Tests."""
        data = {"account_name": "Main", "prefix": "MGO_", "backup_path": "/backups/MGO_Main/"}
        data.update(fields)
        account = AccountRead(id=self._next_id, **data)
        self.accounts[account.id] = account
        self._next_id += 1
        return account

    async def create(self, account: AccountCreate) -> AccountRead:
        return self.add(**account.model_dump())

    async def get(self, account_id: int) -> Optional[AccountRead]:
        return self.accounts.get(account_id)

    async def get_by_name(self, account_name: str) -> Optional[AccountRead]:
        return next((a for a in self.accounts.values() if a.account_name == account_name), None)

    async def name_taken(self, account_name: str) -> bool:
        return await self.get_by_name(account_name) is not None

    async def list_all(self) -> list[AccountRead]:
        return list(self.accounts.values())

    async def update(self, account_id: int, changes: AccountUpdate) -> Optional[AccountRead]:
        current = self.accounts.get(account_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes.model_dump(exclude_unset=True))
        self.accounts[account_id] = updated
        return updated

    async def update_last_played(self, account_id: int) -> None:
        self.last_played_updates.append(account_id)

    async def delete(self, account_id: int) -> bool:
        self.delete_calls.append(account_id)
        if self._events is not None:
            self._events.append(("db_delete", account_id))
        return self.accounts.pop(account_id, None) is not None

    async def count(self) -> int:
        return len(self.accounts)


class FakeLogRepository:
    def __init__(self, broken: bool = False):
        self.entries: list[dict] = []
        self._broken = broken

    async def add_log(self, level, category, message, account_name=None, details=None) -> int:
        if self._broken:
            raise RuntimeError("Log-Sink nicht erreichbar")
        self.entries.append({
            "level": LogLevel(level),
            "category": category,
            "message": message,
            "account_name": account_name,
            "details": details,
        })
        return len(self.entries)

    async def log_info(self, category, message, **kwargs) -> int:
        return await self.add_log(LogLevel.INFO, category, message, **kwargs)

    async def log_warning(self, category, message, **kwargs) -> int:
        return await self.add_log(LogLevel.WARNING, category, message, **kwargs)

    async def log_error(self, category, message, **kwargs) -> int:
        return await self.add_log(LogLevel.ERROR, category, message, **kwargs)

    async def recent(self, limit=100, category=None, account_name=None) -> list[LogEntry]:
        rows = [
            LogEntry(id=i + 1, timestamp="2025-01-01T12:00:00", **e)
            for i, e in enumerate(self.entries)
            if (category is None or e["category"] == category)
            and (account_name is None or e["account_name"] == account_name)
        ]
        return list(reversed(rows))[:limit]

    def levels(self, category: str) -> list[LogLevel]:
        return [e["level"] for e in self.entries if e["category"] == category]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def executor(events) -> FakeExecutor:
    return FakeExecutor(events)


@pytest.fixture
def accounts(events) -> FakeAccountRepository:
    return FakeAccountRepository(events)


@pytest.fixture
def logs() -> FakeLogRepository:
    return FakeLogRepository()
