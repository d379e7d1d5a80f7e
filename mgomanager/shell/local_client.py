"""
Local Shell Client — On-Device Ersatz für ADBShellClient
=========================================================

Führt Befehle direkt auf dem Gerät aus statt über USB-ADB
(Server läuft in Termux auf dem Gerät selbst).

Identische Signatur wie ADBShellClient, gibt ShellResult zurück.
Der Rest des Codes merkt keinen Unterschied.

Unterschiede zu ADBShellClient:
  - shell()      → ["su", "-c", cmd] bzw. ["sh", "-c", cmd] via asyncio subprocess
  - kein Verbindungs-Check (wir SIND das Gerät)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from mgomanager.config import TIMING
from mgomanager.shell.client import ShellError, ShellResult, ShellTimeoutError

logger = logging.getLogger("mgo.shell.local")


class LocalShellClient:
    """
    On-Device Shell Client — Drop-in-Ersatz für ADBShellClient.

    Benötigt Root-Zugriff via Magisk/KernelSU `su`.
    """

    def __init__(self, timeout: int = TIMING.ROOT_COMMAND_TIMEOUT, su_binary: str = "su"):
        self._timeout = timeout
        self._su = su_binary

    async def shell(
        self,
        command: str,
        root: bool = True,
        timeout: Optional[int] = None,
    ) -> ShellResult:
        """
        Führt einen Shell-Befehl direkt auf dem Gerät aus.

        Args:
            command: Shell-Befehl
            root:    True = via su -c ausführen
            timeout: Timeout in Sekunden
        """
        effective_timeout = timeout or self._timeout

        if root and command.lstrip().startswith("su "):
            root = False

        # su -c bekommt den Befehl als ein Argument, kein zusätzliches Quoting nötig
        args = [self._su, "-c", command] if root else ["sh", "-c", command]
        cmd_str = f"local:{'su' if root else 'sh'} {command[:80]}"
        logger.debug("%s", cmd_str)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ShellError(f"{args[0]} nicht ausführbar: {e}") from e

        try:
            stdout_raw, stderr_raw = await asyncio.wait_for(
                proc.communicate(),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ShellTimeoutError(
                f"Timeout ({effective_timeout}s): {cmd_str}",
                returncode=-1,
            )

        return ShellResult(
            returncode=proc.returncode or 0,
            stdout=stdout_raw.decode("utf-8", errors="replace"),
            stderr=stderr_raw.decode("utf-8", errors="replace"),
            command=cmd_str,
        )
