"""
Result-Typen
=============

Erwartete Fehler (Befehl fehlgeschlagen, Output nicht parsebar, Kopie
abgebrochen, SSH nicht erreichbar) werden NICHT als Exception geworfen,
sondern als Result-Wert zurückgegeben. Exceptions existieren nur unterhalb
des Executors (ShellError / ShellTimeoutError).

    result = await executor.execute("id")
    if result.ok:
        print(result.value)
    else:
        print(result.error.kind, result.error.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Fehlerklassen der Engine."""
    COMMAND_FAILED = "command_failed"       # non-zero exit, spawn-Fehler, Timeout
    PARSE_FAILED = "parse_failed"           # keine Permission-Strategie hat gematcht
    COPY_FAILED = "copy_failed"             # Baum-Kopie nicht abgeschlossen
    CONNECTION_FAILED = "connection_failed" # SSH Connect/Auth
    TRANSFER_FAILED = "transfer_failed"     # SFTP put/get/readdir
    NOT_CONFIGURED = "not_configured"       # z.B. SSH-Host fehlt
    NOT_FOUND = "not_found"                 # Account / Backup-Datei fehlt


@dataclass(frozen=True)
class EngineError:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Erfolg (value) oder Fehler (error) — nie beides."""
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "Result[T]":
        return cls(error=EngineError(kind=kind, message=message))

    def unwrap(self) -> T:
        """Gibt value zurück oder wirft RuntimeError (nur für Tests/Invarianten)."""
        if self.error is not None:
            raise RuntimeError(str(self.error))
        return self.value


# Ergebnis eines einzelnen privilegierten Befehls: stdout bei Erfolg
CommandResult = Result[str]
