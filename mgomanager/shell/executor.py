"""
Privileged Command Executor
============================

Die einzige Grenze zwischen Engine und Root-Shell:

    execute(command: str) -> CommandResult

  - command ist eine fertige Shell-Zeile. KEINE Validierung, kein Quoting:
    Pfade quotet der Aufrufer mit quote_path(), alles andere muss vorher
    validiert sein (siehe models/account.py, models/permissions.py).
  - exit != 0, Spawn-Fehler oder Timeout → Result.failure(COMMAND_FAILED)
    mit stderr bzw. Exception-Text.
  - KEINE Retries. Retry-Politik liegt beim Aufrufer.
  - Wirft nie — alles oberhalb arbeitet nur mit Result-Werten.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from mgomanager.config import MGO_LAUNCH_COMMAND, MGO_PACKAGE
from mgomanager.models.result import CommandResult, ErrorKind, Result
from mgomanager.shell.client import ShellError, ShellTimeoutError

logger = logging.getLogger("mgo.shell.executor")


class Executor(Protocol):
    """Eine Fähigkeit: privilegierten Befehl ausführen, Result zurückgeben."""

    async def execute(self, command: str) -> CommandResult: ...


class RootExecutor:
    """
    Executor über einen Shell-Client (ADBShellClient oder LocalShellClient).

    Usage:
        executor = RootExecutor(create_shell_client())
        result = await executor.execute('ls -ld "/data/data/com.scopely.monopolygo"')
    """

    def __init__(self, shell, timeout: Optional[int] = None):
        self._shell = shell
        self._timeout = timeout

    async def execute(self, command: str) -> CommandResult:
        try:
            result = await self._shell.shell(command, root=True, timeout=self._timeout)
        except ShellTimeoutError as e:
            logger.warning("Timeout: %s", command)
            return Result.failure(ErrorKind.COMMAND_FAILED, str(e))
        except ShellError as e:
            logger.warning("Shell-Fehler bei '%s': %s", command, e)
            return Result.failure(ErrorKind.COMMAND_FAILED, str(e))

        if not result.success:
            detail = result.stderr.strip() or f"exit {result.returncode}"
            logger.debug("Befehl fehlgeschlagen (exit %d): %s", result.returncode, command)
            return Result.failure(ErrorKind.COMMAND_FAILED, f"Command failed: {detail}")

        return Result.success(result.output)


# =============================================================================
# App-Steuerung (Ziel-App)
# =============================================================================

async def force_stop_app(executor: Executor, package: str = MGO_PACKAGE) -> CommandResult:
    """am force-stop — muss vor jedem Kopieren der App-Daten laufen."""
    return await executor.execute(f"am force-stop {package}")


async def launch_app(executor: Executor) -> CommandResult:
    """Startet die Ziel-App über den Launcher-Intent."""
    return await executor.execute(MGO_LAUNCH_COMMAND)


async def has_root(executor: Executor) -> bool:
    """`id` über den Executor, Root nur bei uid=0."""
    result = await executor.execute("id")
    return result.ok and "uid=0" in (result.value or "")


async def is_package_installed(executor: Executor, package: str = MGO_PACKAGE) -> bool:
    result = await executor.execute(f"pm list packages {package}")
    return result.ok and f"package:{package}" in (result.value or "")
