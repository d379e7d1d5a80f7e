"""
Unit Tests: FilePermissionManager
==================================

Prüfungen:
  - Parser: stat -c, verbose stat, ls -ld (inkl. Sonderbits)
  - Modus-Normalisierung: "0755" → "755", "0000" → "0"
  - Strategie-Reihenfolge: erster Treffer gewinnt, Parse-Fehler → nächste
  - Fehler-Aggregation: PARSE_FAILED vs. COMMAND_FAILED
  - chown/chmod: rekursiv, Pfad in Anführungszeichen
"""

import pytest

from conftest import FakeExecutor
from mgomanager.engine.permissions import (
    FilePermissionManager,
    parse_ls_format,
    parse_stat_format,
    parse_verbose_stat,
    symbolic_to_octal,
)
from mgomanager.models.permissions import FilePermissions, normalize_mode
from mgomanager.models.result import ErrorKind

PATH = "/data/data/com.scopely.monopolygo/files/DiskBasedCacheDirectory"

VERBOSE_STAT = (
    "Access: (0771/drwxrwx--x)  Uid: (10123/u0_a123)   Gid: (10123/u0_a123)\n"
)
VERBOSE_STAT_SPLIT = (
    "  Uid: ( 10123/ u0_a123)   Gid: ( 20123/ u0_a123_cache)\n"
    "Access: (0750/drwxr-x---)\n"
)


# =============================================================================
# Parser
# =============================================================================

class TestParsers:
    """Jedes Output-Format wird in dasselbe Triple übersetzt."""

    def test_stat_format(self):
        perms = parse_stat_format("u0_a123:u0_a123 771\n")
        assert perms == FilePermissions(owner="u0_a123", group="u0_a123", mode="771")

    def test_stat_format_rejects_garbage(self):
        assert parse_stat_format("stat: unknown option -c") is None
        assert parse_stat_format("u0_a123 771") is None
        assert parse_stat_format("") is None

    def test_stat_format_rejects_non_octal_mode(self):
        assert parse_stat_format("root:root 8xx") is None

    def test_verbose_stat_single_line(self):
        perms = parse_verbose_stat(VERBOSE_STAT)
        assert perms is not None
        assert (perms.owner, perms.group, perms.mode) == ("u0_a123", "u0_a123", "771")

    def test_verbose_stat_split_lines(self):
        perms = parse_verbose_stat(VERBOSE_STAT_SPLIT)
        assert perms is not None
        assert perms.group == "u0_a123_cache"
        assert perms.mode == "750"

    def test_verbose_stat_missing_access(self):
        assert parse_verbose_stat("  Uid: ( 10123/ u0_a123)   Gid: ( 10123/ u0_a123)") is None

    def test_ls_format(self):
        perms = parse_ls_format("drwxrwx--x 4 u0_a123 u0_a123 3488 2024-01-01 12:00 " + PATH)
        assert perms == FilePermissions(owner="u0_a123", group="u0_a123", mode="771")

    def test_ls_format_too_short(self):
        assert parse_ls_format("ls: cannot access") is None
        assert parse_ls_format("") is None

    @pytest.mark.parametrize("symbolic,expected", [
        ("rwxr-xr-x", "755"),
        ("rwxrwx--x", "771"),
        ("rw-------", "600"),
        ("rwsr-xr-x", "755"),
        ("rwxr-xr-t", "755"),
        ("rwSr--r--", "644"),
        ("---------", "0"),
    ])
    def test_symbolic_to_octal(self, symbolic: str, expected: str):
        assert symbolic_to_octal(symbolic) == expected

    def test_symbolic_to_octal_invalid(self):
        assert symbolic_to_octal("rwxr-xr-") is None
        assert symbolic_to_octal("abcdefghi") is None


class TestModeNormalization:
    """Führende Nullen weg, der Null-Modus bleibt "0"."""

    @pytest.mark.parametrize("raw,expected", [
        ("0755", "755"),
        ("0771", "771"),
        ("755", "755"),
        ("0000", "0"),
        ("0", "0"),
    ])
    def test_normalize(self, raw: str, expected: str):
        assert normalize_mode(raw) == expected

    def test_model_normalizes(self):
        assert FilePermissions(owner="root", group="root", mode="0000").mode == "0"

    def test_model_rejects_whitespace_owner(self):
        with pytest.raises(ValueError):
            FilePermissions(owner="u0 a1", group="root", mode="755")

    @pytest.mark.parametrize("owner", ["root;id", "$(id)", "u0:a1", "a|b", "`id`", ""])
    def test_model_rejects_shell_metacharacters(self, owner):
        with pytest.raises(ValueError):
            FilePermissions(owner=owner, group="root", mode="755")

    def test_str(self):
        assert str(FilePermissions(owner="u0_a1", group="u0_a1", mode="0771")) == "u0_a1:u0_a1 771"


# =============================================================================
# Strategien
# =============================================================================

class TestStrategyOrder:
    """Erster erfolgreich geparster Befehl gewinnt."""

    @pytest.mark.asyncio
    async def test_first_strategy_wins(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a123:u0_a123 771")
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert result.ok
        assert result.value.mode == "771"
        assert executor.commands == [f"stat -c '%U:%G %a' \"{PATH}\""]

    @pytest.mark.asyncio
    async def test_parse_failure_falls_through(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "stat: bad format")
        executor.on(r"^stat \"", VERBOSE_STAT)
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert result.ok
        assert result.value.owner == "u0_a123"
        assert len(executor.commands) == 2
        assert executor.commands[1] == f"stat \"{PATH}\" | grep -E 'Uid:|Access:' | head -2"

    @pytest.mark.asyncio
    async def test_ls_is_last_resort(self, executor: FakeExecutor):
        executor.fail(r"^stat")
        executor.on(r"^ls -ld", "drwxr-x--- 2 u0_a9 u0_a9 4096 2024-01-01 12:00 x")
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert result.ok
        assert result.value == FilePermissions(owner="u0_a9", group="u0_a9", mode="750")
        assert executor.commands[-1] == f"ls -ld \"{PATH}\""


class TestAggregation:
    """Alle Strategien gescheitert → genau ein aggregierter Fehler."""

    @pytest.mark.asyncio
    async def test_all_commands_failed(self, executor: FakeExecutor):
        executor.fail(r".*", "Command failed: Permission denied")
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert not result.ok
        assert result.error.kind == ErrorKind.COMMAND_FAILED
        assert len(executor.commands) == 3
        assert "stat -c" in result.error.message and "ls -ld" in result.error.message

    @pytest.mark.asyncio
    async def test_outputs_unparseable(self, executor: FakeExecutor):
        executor.on(r".*", "nonsense")
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert not result.ok
        assert result.error.kind == ErrorKind.PARSE_FAILED

    @pytest.mark.asyncio
    async def test_mixed_failure_is_parse_failed(self, executor: FakeExecutor):
        executor.fail(r"^stat")
        executor.on(r"^ls -ld", "total 0")
        result = await FilePermissionManager(executor).get_file_permissions(PATH)

        assert result.error.kind == ErrorKind.PARSE_FAILED

    @pytest.mark.asyncio
    async def test_retry_recovers(self, executor: FakeExecutor, monkeypatch):
        """Erster Durchlauf scheitert komplett, zweiter liefert."""
        sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)
            executor.on(r"^stat -c", "u0_a1:u0_a1 771")

        monkeypatch.setattr("mgomanager.engine.permissions.asyncio.sleep", fake_sleep)
        executor.fail(r".*")
        result = await FilePermissionManager(executor).get_file_permissions_with_retry(PATH)

        assert result.ok
        assert sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_retry_backoff_exhausted(self, executor: FakeExecutor, monkeypatch):
        sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            sleeps.append(delay)

        monkeypatch.setattr("mgomanager.engine.permissions.asyncio.sleep", fake_sleep)
        executor.fail(r".*")
        result = await FilePermissionManager(executor).get_file_permissions_with_retry(PATH)

        assert not result.ok
        assert sleeps == [0.5, 1.0]
        assert len(executor.commands) == 9


# =============================================================================
# Setzen
# =============================================================================

class TestApply:
    """chown/chmod rekursiv, Pfade gequotet, kein Abbruch bei Fehlern."""

    @pytest.mark.asyncio
    async def test_chown_quoted(self, executor: FakeExecutor):
        path = "/data/data/pkg/shared prefs"
        result = await FilePermissionManager(executor).set_file_ownership(path, "u0_a1", "u0_a1")
        assert result.ok
        assert executor.commands == ['chown -R u0_a1:u0_a1 "/data/data/pkg/shared prefs"']

    @pytest.mark.asyncio
    async def test_chmod_quoted(self, executor: FakeExecutor):
        await FilePermissionManager(executor).set_file_permissions("/data/x y", "771")
        assert executor.commands == ['chmod -R 771 "/data/x y"']

    @pytest.mark.asyncio
    async def test_chown_rejects_unsafe_owner(self, executor: FakeExecutor):
        result = await FilePermissionManager(executor).set_file_ownership("/a", "root;touch${IFS}/x;", "g")

        assert result.error.kind == ErrorKind.COMMAND_FAILED
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_chmod_rejects_non_octal(self, executor: FakeExecutor):
        result = await FilePermissionManager(executor).set_file_permissions("/a", "777; id")

        assert not result.ok
        assert executor.commands == []

    @pytest.mark.asyncio
    async def test_path_expansion_escaped(self, executor: FakeExecutor):
        await FilePermissionManager(executor).set_file_permissions("/x$(id)", "771")
        assert executor.commands == ['chmod -R 771 "/x\\$(id)"']

    @pytest.mark.asyncio
    async def test_apply_continues_after_failure(self, executor: FakeExecutor):
        executor.fail(r"^chown -R .*\"/a\"")
        perms = FilePermissions(owner="u0_a1", group="u0_a1", mode="771")
        failures = await FilePermissionManager(executor).apply_permissions(["/a", "/b"], perms)

        assert len(failures) == 1
        assert failures[0].startswith("chown /a")
        assert executor.commands == [
            'chown -R u0_a1:u0_a1 "/a"',
            'chmod -R 771 "/a"',
            'chown -R u0_a1:u0_a1 "/b"',
            'chmod -R 771 "/b"',
        ]
