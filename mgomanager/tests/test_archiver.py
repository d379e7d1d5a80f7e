"""
Unit Tests: BackupArchiver
===========================

Prüfungen:
  - Export: mkdir + cp -r pro Eintrag, SSAID optional
  - Import: rm -rf + mkdir + cp -rT, Kopierfehler = COPY_FAILED
  - Cancel-Token zwischen den Einträgen
  - Eindeutige Account-Namen (_1, _2, ...)
"""

import asyncio

import pytest

from conftest import FakeExecutor
from mgomanager.config import MGO_DISK_CACHE_PATH, MGO_FILES_PATH, MGO_PREFS_PATH, SSAID_PATH
from mgomanager.engine.archiver import BackupArchiver
from mgomanager.engine.permissions import FilePermissionManager
from mgomanager.models.result import ErrorKind

BACKUP = "/backups/MGO_Main/"


def make_archiver(executor: FakeExecutor) -> BackupArchiver:
    return BackupArchiver(executor, FilePermissionManager(executor), backup_root="/backups/")


class TestPaths:

    def test_backup_path_for(self, executor: FakeExecutor):
        assert make_archiver(executor).backup_path_for("MGO_", "Main") == BACKUP

    def test_backup_path_without_trailing_slash(self, executor: FakeExecutor):
        archiver = BackupArchiver(executor, FilePermissionManager(executor), backup_root="/backups")
        assert archiver.backup_path_for("X_", "a") == "/backups/X_a/"


class TestExport:
    """Live → Backup."""

    @pytest.mark.asyncio
    async def test_copies_all_items(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a123:u0_a123 771")
        result = await make_archiver(executor).export_snapshot(BACKUP)

        assert result.ok
        report = result.value
        assert report.permissions.owner == "u0_a123"
        assert report.copied == ["DiskBasedCacheDirectory", "shared_prefs", "settings_ssaid.xml"]
        assert f'mkdir -p "{BACKUP}"' in executor.commands
        assert f'cp -r "{MGO_DISK_CACHE_PATH}" "{BACKUP}DiskBasedCacheDirectory"' in executor.commands
        assert f'cp -r "{MGO_PREFS_PATH}" "{BACKUP}shared_prefs"' in executor.commands
        assert f'cp "{SSAID_PATH}" "{BACKUP}settings_ssaid.xml"' in executor.commands

    @pytest.mark.asyncio
    async def test_permissions_read_from_files_dir(self, executor: FakeExecutor):
        """Gelesen wird files/, das Verzeichnis, das der Restore per chown -R setzt."""
        executor.on(r"^stat -c", "u0_a123:u0_a123 771")
        await make_archiver(executor).export_snapshot(BACKUP)

        assert executor.commands[0] == f"stat -c '%U:%G %a' \"{MGO_FILES_PATH}\""

    @pytest.mark.asyncio
    async def test_old_item_removed_before_copy(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a1:u0_a1 771")
        await make_archiver(executor).export_snapshot(BACKUP)

        rm_index = executor.commands.index(f'rm -rf "{BACKUP}shared_prefs"')
        cp_index = executor.commands.index(f'cp -r "{MGO_PREFS_PATH}" "{BACKUP}shared_prefs"')
        assert rm_index < cp_index

    @pytest.mark.asyncio
    async def test_required_copy_failure_is_fatal(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a1:u0_a1 771")
        executor.fail(r"^cp -r .*shared_prefs")
        result = await make_archiver(executor).export_snapshot(BACKUP)

        assert not result.ok
        assert result.error.kind == ErrorKind.COPY_FAILED
        assert not executor.ran(f'cp "{SSAID_PATH}"')

    @pytest.mark.asyncio
    async def test_ssaid_failure_is_warning(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a1:u0_a1 771")
        executor.fail(r"settings_ssaid\.xml\"$")
        result = await make_archiver(executor).export_snapshot(BACKUP)

        assert result.ok
        assert "settings_ssaid.xml" not in result.value.copied
        assert len(result.value.warnings) == 1

    @pytest.mark.asyncio
    async def test_unreadable_permissions_are_warning(self, executor: FakeExecutor, monkeypatch):
        async def no_sleep(_delay: float) -> None:
            return None

        monkeypatch.setattr("mgomanager.engine.permissions.asyncio.sleep", no_sleep)
        executor.fail(r"^(stat|ls)")
        result = await make_archiver(executor).export_snapshot(BACKUP)

        assert result.ok
        assert result.value.permissions is None
        assert any("Berechtigungen" in w for w in result.value.warnings)

    @pytest.mark.asyncio
    async def test_mkdir_failure(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a1:u0_a1 771")
        executor.fail(r"^mkdir -p")
        result = await make_archiver(executor).export_snapshot(BACKUP)

        assert result.error.kind == ErrorKind.COPY_FAILED
        assert not executor.ran("cp ")

    @pytest.mark.asyncio
    async def test_cancel_before_first_item(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a1:u0_a1 771")
        cancel = asyncio.Event()
        cancel.set()
        result = await make_archiver(executor).export_snapshot(BACKUP, cancel=cancel)

        assert result.error.kind == ErrorKind.COPY_FAILED
        assert not executor.ran("cp ")


class TestImport:
    """Backup → Live."""

    @pytest.mark.asyncio
    async def test_replaces_live_dirs(self, executor: FakeExecutor):
        executor.on(r"^stat -c", "u0_a5:u0_a5 771")
        result = await make_archiver(executor).import_snapshot(BACKUP)

        assert result.ok
        assert result.value.permissions.owner == "u0_a5"
        assert executor.commands[0] == f"stat -c '%U:%G %a' \"{MGO_FILES_PATH}\""
        rm = executor.commands.index(f'rm -rf "{MGO_PREFS_PATH}"')
        cp = executor.commands.index(f'cp -rT "{BACKUP}shared_prefs" "{MGO_PREFS_PATH}"')
        assert rm < cp
        assert f'cp "{BACKUP}settings_ssaid.xml" "{SSAID_PATH}"' in executor.commands

    @pytest.mark.asyncio
    async def test_copy_failure(self, executor: FakeExecutor):
        executor.fail(r"^cp -rT .*DiskBasedCacheDirectory")
        result = await make_archiver(executor).import_snapshot(BACKUP)

        assert not result.ok
        assert result.error.kind == ErrorKind.COPY_FAILED
        assert not executor.ran(f'cp -rT "{BACKUP}shared_prefs"')

    @pytest.mark.asyncio
    async def test_cancel_between_items(self, executor: FakeExecutor):
        cancel = asyncio.Event()
        original = executor.execute

        async def cancelling_execute(command: str):
            result = await original(command)
            if command.startswith("cp -rT") and "DiskBasedCacheDirectory" in command:
                cancel.set()
            return result

        executor.execute = cancelling_execute
        result = await make_archiver(executor).import_snapshot(BACKUP, cancel=cancel)

        assert result.error.kind == ErrorKind.COPY_FAILED
        assert "shared_prefs" in result.error.message
        assert not executor.ran(f'rm -rf "{MGO_PREFS_PATH}"')

    @pytest.mark.asyncio
    async def test_validate_missing(self, executor: FakeExecutor):
        executor.fail(r"^test -d .*shared_prefs")
        result = await make_archiver(executor).validate_snapshot(BACKUP)

        assert result.error.kind == ErrorKind.NOT_FOUND
        assert "shared_prefs" in result.error.message


class TestUniqueName:
    """_1, _2, ... bis weder DB noch Backup-Root den Namen kennen."""

    @pytest.mark.asyncio
    async def test_free_name_unchanged(self, executor: FakeExecutor):
        executor.fail(r"^test -d")

        async def taken(_name: str) -> bool:
            return False

        assert await make_archiver(executor).find_unique_account_name("Main", "MGO_", taken) == "Main"

    @pytest.mark.asyncio
    async def test_suffix_for_db_and_folder(self, executor: FakeExecutor):
        executor.fail(r"^test -d")
        executor.on(r'^test -d "/backups/MGO_Main_1/"', "")

        async def taken(name: str) -> bool:
            return name == "Main"

        name = await make_archiver(executor).find_unique_account_name("Main", "MGO_", taken)
        assert name == "Main_2"
