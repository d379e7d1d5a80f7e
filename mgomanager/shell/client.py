"""
MGO Manager — Async Root Shell (ADB-Transport)
================================================

Asynchroner Wrapper um `adb shell su -c "..."` für den Betrieb
vom Host (Laptop + USB) aus.

Features:
  - Vollständig async (asyncio.create_subprocess_exec)
  - Strukturierte Ergebnisse (ShellResult)
  - Root-Shell via `su -c` (Magisk/KernelSU kompatibel)
  - Timeout-Protection für jeden Befehl
  - KEINE Retries — Retry-Politik liegt beim Aufrufer

Alle Root-Befehle laufen über einen Shell-Client (dieser oder
LocalShellClient). Kein direkter subprocess-Aufruf an anderer Stelle.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from mgomanager.config import TIMING

logger = logging.getLogger("mgo.shell.adb")


# =============================================================================
# Exceptions
# =============================================================================

class ShellError(Exception):
    """Basis-Exception für Shell-Fehler."""

    def __init__(self, message: str, returncode: int = -1, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ShellConnectionError(ShellError):
    """Gerät nicht verbunden oder ADB-Daemon nicht erreichbar."""
    pass


class ShellTimeoutError(ShellError):
    """Befehl hat das Timeout überschritten."""
    pass


# =============================================================================
# Result
# =============================================================================

@dataclass
class ShellResult:
    """Strukturiertes Ergebnis eines Shell-Befehls."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    command: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Gibt stdout zurück, gestripped."""
        return self.stdout.strip()


# Zeichen, die innerhalb "..." noch von der Shell ausgewertet werden
_DQUOTE_SPECIAL = ("\\", "\"", "$", "`")


def _escape_dquoted(text: str) -> str:
    for char in _DQUOTE_SPECIAL:
        text = text.replace(char, "\\" + char)
    return text


def quote_path(path: str) -> str:
    """
    Pfad in doppelte Anführungszeichen, mit \\ " $ ` escaped.

    '/data/a b'  → "/data/a b"
    '/x$(id)'    → "/x\\$(id)"   (keine Command Substitution)
    """
    return f"\"{_escape_dquoted(path)}\""


def wrap_su(command: str) -> str:
    """
    Verpackt eine fertige Shell-Zeile für `adb shell su -c "..."`.

    Die äußere Geräte-Shell entfernt genau eine Escape-Ebene, su -c sieht
    danach wieder die Original-Zeile.
    """
    return f'su -c "{_escape_dquoted(command)}"'


# =============================================================================
# ADB Shell Client
# =============================================================================

class ADBShellClient:
    """
    Root-Shell über USB-ADB.

    Usage:
        shell = ADBShellClient()
        result = await shell.shell("ls -ld /data/data/com.scopely.monopolygo", root=True)
        if result.success:
            print(result.output)
    """

    def __init__(self, timeout: int = TIMING.ROOT_COMMAND_TIMEOUT, serial: Optional[str] = None):
        self._timeout = timeout
        self._serial = serial

    # =========================================================================
    # Core: Befehl ausführen
    # =========================================================================

    async def _exec(self, args: list[str], timeout: Optional[int] = None) -> ShellResult:
        """
        Führt `adb <args>` asynchron aus.

        Raises:
            ShellTimeoutError:     nach Timeout (Prozess wird gekillt)
            ShellConnectionError:  Gerät nicht erreichbar
            ShellError:            adb Binary nicht gefunden
        """
        effective_timeout = timeout or self._timeout
        base = ["adb", "-s", self._serial] if self._serial else ["adb"]
        cmd_str = " ".join([*base, *args])
        logger.debug("ADB: %s", cmd_str)

        try:
            proc = await asyncio.create_subprocess_exec(
                *base, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ShellError(f"ADB nicht gefunden: {e}") from e

        try:
            stdout_raw, stderr_raw = await asyncio.wait_for(
                proc.communicate(),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ShellTimeoutError(
                f"Timeout ({effective_timeout}s) bei: {cmd_str}",
                returncode=-1,
            )

        stdout_str = stdout_raw.decode("utf-8", errors="replace")
        stderr_str = stderr_raw.decode("utf-8", errors="replace")

        if self._is_connection_error(stderr_str):
            raise ShellConnectionError(
                f"ADB Verbindungsfehler: {stderr_str.strip()}",
                returncode=proc.returncode or -1,
                stderr=stderr_str,
            )

        result = ShellResult(
            returncode=proc.returncode or 0,
            stdout=stdout_str,
            stderr=stderr_str,
            command=cmd_str,
        )
        if not result.success:
            logger.debug(
                "ADB exit=%d: %s | stderr: %s",
                result.returncode, cmd_str, stderr_str.strip()[:200],
            )
        return result

    @staticmethod
    def _is_connection_error(stderr: str) -> bool:
        """Erkennt ADB-Verbindungsfehler (kein Gerät, Daemon weg)."""
        indicators = [
            "error: device not found",
            "error: no devices",
            "error: device offline",
            "cannot connect to daemon",
            "protocol fault",
        ]
        stderr_lower = stderr.lower()
        return any(ind in stderr_lower for ind in indicators)

    # =========================================================================
    # Public API
    # =========================================================================

    async def shell(
        self,
        command: str,
        root: bool = True,
        timeout: Optional[int] = None,
    ) -> ShellResult:
        """
        Führt einen Shell-Befehl auf dem Gerät aus.

        Args:
            command: Vollständige Shell-Zeile (Pfade bereits gequotet)
            root:    True = via `su -c "..."` ausführen
            timeout: Optionales Timeout (Sekunden)
        """
        # Bereits mit su gewrappte Befehle nicht doppelt wrappen
        if root and command.lstrip().startswith("su "):
            root = False

        shell_cmd = wrap_su(command) if root else command
        return await self._exec(["shell", shell_cmd], timeout=timeout)
