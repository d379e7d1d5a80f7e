"""
MGO Manager — FilePermissionManager
=====================================

Liest Owner/Group/Mode eines Pfads über den Root-Executor und setzt
sie rekursiv wieder (chown -R / chmod -R).

Warum mehrere Strategien:
  Je nach Android-Build/Toybox-Version liefern `stat` und `ls` völlig
  unterschiedliche Formate — kein einzelner Befehl ist überall vorhanden.
  Deshalb eine geordnete Liste unabhängiger (Befehl, Parser)-Paare,
  der erste Treffer gewinnt:

    1. stat -c '%U:%G %a' "<path>"                       → "u0_a123:u0_a123 771"
    2. stat "<path>" | grep -E 'Uid:|Access:' | head -2   → Uid: ( 10123/ u0_a123)   Gid: ( ... )
                                                             Access: (0771/drwxrwx--x)
    3. ls -ld "<path>"                                    → drwxrwx--x 4 u0_a123 u0_a123 3488 ...

  Befehl OK aber Output nicht parsebar → nächste Strategie.
  Alle drei gescheitert → EIN aggregierter Fehler:
    PARSE_FAILED   wenn mindestens ein Befehl Output geliefert hat
    COMMAND_FAILED wenn kein einziger Befehl erfolgreich war

Pfade werden IMMER über quote_path() in doppelte Anführungszeichen gesetzt.
Owner/Group/Mode stehen ungequotet im Befehl und werden vorher geprüft.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError

from mgomanager.config import TIMING
from mgomanager.models.permissions import FilePermissions, check_mode, check_principal, normalize_mode
from mgomanager.models.result import ErrorKind, Result
from mgomanager.shell.client import quote_path
from mgomanager.shell.executor import Executor

logger = logging.getLogger("mgo.engine.permissions")

_UID_RE = re.compile(r"Uid:\s*\(\s*\d+/\s*([^\s)]+)\s*\)")
_GID_RE = re.compile(r"Gid:\s*\(\s*\d+/\s*([^\s)]+)\s*\)")
_ACCESS_RE = re.compile(r"Access:\s*\(\s*(\d+)/")


# =============================================================================
# Parser: jeder liefert FilePermissions oder None
# =============================================================================

def _build(owner: str, group: str, mode: str) -> Optional[FilePermissions]:
    try:
        return FilePermissions(owner=owner, group=group, mode=mode)
    except ValidationError:
        return None


def parse_stat_format(output: str) -> Optional[FilePermissions]:
    """'owner:group mode' (stat -c '%U:%G %a')."""
    parts = output.strip().split()
    if len(parts) != 2:
        return None
    owner_group = parts[0].split(":")
    if len(owner_group) != 2:
        return None
    return _build(owner_group[0], owner_group[1], parts[1])


def parse_verbose_stat(output: str) -> Optional[FilePermissions]:
    """Mehrzeiliges stat mit 'Uid: ( 10123/ u0_a123)' und 'Access: (0755/drwxr-xr-x)'."""
    lines = output.strip().splitlines()
    uid_line = next((ln for ln in lines if "Uid:" in ln), None)
    access_line = next((ln for ln in lines if "Access:" in ln and "/" in ln), None)
    if uid_line is None or access_line is None:
        return None

    uid_match = _UID_RE.search(uid_line)
    gid_match = _GID_RE.search(uid_line)
    access_match = _ACCESS_RE.search(access_line)
    if not (uid_match and gid_match and access_match):
        return None

    return _build(uid_match.group(1), gid_match.group(1), normalize_mode(access_match.group(1)))


def parse_ls_format(output: str) -> Optional[FilePermissions]:
    """Long Listing: 'drwxr-xr-x 2 owner group size date path' (Felder 3 und 4)."""
    lines = output.strip().splitlines()
    if not lines:
        return None
    parts = lines[0].split()
    if len(parts) < 4 or len(parts[0]) < 10:
        return None
    mode = symbolic_to_octal(parts[0][1:10])
    if mode is None:
        return None
    return _build(parts[2], parts[3], mode)


def symbolic_to_octal(symbolic: str) -> Optional[str]:
    """
    'rwxr-xr-x' → '755'.

    s/t (setuid/setgid/sticky mit x) zählen als ausführbar, S/T ohne x.
    Sonderbits selbst fließen nicht in den Modus ein.
    """
    if len(symbolic) != 9:
        return None
    digits = []
    for i in range(0, 9, 3):
        r, w, x = symbolic[i:i + 3]
        if r not in "r-" or w not in "w-" or x not in "xsStT-":
            return None
        value = (4 if r == "r" else 0) + (2 if w == "w" else 0) + (1 if x in "xst" else 0)
        digits.append(str(value))
    return normalize_mode("".join(digits))


# =============================================================================
# Strategien
# =============================================================================

@dataclass(frozen=True)
class PermissionStrategy:
    name: str
    build_command: Callable[[str], str]
    parse: Callable[[str], Optional[FilePermissions]]


STRATEGIES: tuple[PermissionStrategy, ...] = (
    PermissionStrategy(
        name="stat -c",
        build_command=lambda path: f"stat -c '%U:%G %a' {quote_path(path)}",
        parse=parse_stat_format,
    ),
    PermissionStrategy(
        name="stat (verbose)",
        build_command=lambda path: f"stat {quote_path(path)} | grep -E 'Uid:|Access:' | head -2",
        parse=parse_verbose_stat,
    ),
    PermissionStrategy(
        name="ls -ld",
        build_command=lambda path: f"ls -ld {quote_path(path)}",
        parse=parse_ls_format,
    ),
)


# =============================================================================
# FilePermissionManager
# =============================================================================

class FilePermissionManager:
    """
    Usage:
        manager = FilePermissionManager(executor)
        result = await manager.get_file_permissions("/data/data/com.scopely.monopolygo/files")
        if result.ok:
            await manager.set_file_ownership(path, result.value.owner, result.value.group)
    """

    def __init__(self, executor: Executor, strategies: tuple[PermissionStrategy, ...] = STRATEGIES):
        self._executor = executor
        self._strategies = strategies

    async def get_file_permissions(self, path: str) -> Result[FilePermissions]:
        """Probiert alle Strategien der Reihe nach, erster Treffer gewinnt."""
        attempts: list[str] = []
        any_command_succeeded = False

        for strategy in self._strategies:
            result = await self._executor.execute(strategy.build_command(path))
            if not result.ok:
                attempts.append(f"{strategy.name}: {result.error.message}")
                continue

            any_command_succeeded = True
            perms = strategy.parse(result.value or "")
            if perms is not None:
                logger.debug("Berechtigungen %s via %s: %s", path, strategy.name, perms)
                return Result.success(perms)

            attempts.append(f"{strategy.name}: unerwarteter Output {result.value!r}")

        kind = ErrorKind.PARSE_FAILED if any_command_succeeded else ErrorKind.COMMAND_FAILED
        message = f"Berechtigungen von {path} nicht lesbar ({'; '.join(attempts)})"
        logger.warning(message)
        return Result.failure(kind, message)

    async def get_file_permissions_with_retry(
        self,
        path: str,
        attempts: int = TIMING.PERMISSION_READ_RETRIES,
        base_delay: float = TIMING.PERMISSION_RETRY_BASE_DELAY,
    ) -> Result[FilePermissions]:
        """
        Wie get_file_permissions, aber mit Retry für Root-Timing-Probleme
        (su-Dialog gerade erst bestätigt). Backoff: 0.5s, 1s, 2s.
        """
        result = await self.get_file_permissions(path)
        for attempt in range(1, attempts):
            if result.ok:
                break
            delay = base_delay * (2 ** (attempt - 1))
            logger.info(
                "Berechtigungen lesen fehlgeschlagen (Versuch %d/%d), Retry in %.1fs",
                attempt, attempts, delay,
            )
            await asyncio.sleep(delay)
            result = await self.get_file_permissions(path)
        return result

    async def set_file_ownership(self, path: str, owner: str, group: str) -> Result[None]:
        try:
            owner, group = check_principal(owner), check_principal(group)
        except ValueError as e:
            logger.error("chown abgelehnt für %s: %s", path, e)
            return Result.failure(ErrorKind.COMMAND_FAILED, f"chown abgelehnt: {e}")

        result = await self._executor.execute(f"chown -R {owner}:{group} {quote_path(path)}")
        if not result.ok:
            return Result.failure(result.error.kind, result.error.message)
        return Result.success(None)

    async def set_file_permissions(self, path: str, mode: str) -> Result[None]:
        try:
            mode = check_mode(mode)
        except ValueError as e:
            logger.error("chmod abgelehnt für %s: %s", path, e)
            return Result.failure(ErrorKind.COMMAND_FAILED, f"chmod abgelehnt: {e}")

        result = await self._executor.execute(f"chmod -R {mode} {quote_path(path)}")
        if not result.ok:
            return Result.failure(result.error.kind, result.error.message)
        return Result.success(None)

    async def apply_permissions(self, paths: list[str], perms: FilePermissions) -> list[str]:
        """
        chown -R + chmod -R auf jeden Pfad. Bricht bei Fehlern NICHT ab.

        Returns:
            Liste der Fehlermeldungen (leer = alles angewendet)
        """
        failures: list[str] = []
        for path in paths:
            owned = await self.set_file_ownership(path, perms.owner, perms.group)
            if not owned.ok:
                failures.append(f"chown {path}: {owned.error.message}")
            moded = await self.set_file_permissions(path, perms.mode)
            if not moded.ok:
                failures.append(f"chmod {path}: {moded.error.message}")
        return failures
