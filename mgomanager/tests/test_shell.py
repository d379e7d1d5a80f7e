"""
Unit Tests: Shell-Client + RootExecutor
========================================

LocalShellClient läuft mit su_binary="sh", damit die Tests ohne Root
echte Subprozesse starten können.
"""

import pytest

from conftest import FakeExecutor
from mgomanager.engine.archiver import BackupArchiver
from mgomanager.engine.permissions import FilePermissionManager
from mgomanager.models.result import ErrorKind
from mgomanager.shell.client import ShellError, ShellResult, ShellTimeoutError, quote_path, wrap_su
from mgomanager.shell.executor import (
    RootExecutor,
    force_stop_app,
    has_root,
    is_package_installed,
    launch_app,
)
from mgomanager.shell.local_client import LocalShellClient


class StubShell:
    """Shell-Client, der eine feste Antwort liefert oder eine Exception wirft."""

    def __init__(self, result: ShellResult | None = None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls: list[tuple[str, bool, int | None]] = []

    async def shell(self, command, root=True, timeout=None):
        self.calls.append((command, root, timeout))
        if self.error is not None:
            raise self.error
        return self.result


class TestRootExecutor:

    @pytest.mark.asyncio
    async def test_success_returns_stdout(self):
        shell = StubShell(ShellResult(returncode=0, stdout="uid=0(root)\n", stderr="", command="id"))
        result = await RootExecutor(shell, timeout=7).execute("id")

        assert result.ok
        assert result.value == "uid=0(root)"
        assert shell.calls == [("id", True, 7)]

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        shell = StubShell(ShellResult(returncode=1, stdout="", stderr="No such file\n", command="ls"))
        result = await RootExecutor(shell).execute("ls /nope")

        assert result.error.kind == ErrorKind.COMMAND_FAILED
        assert "No such file" in result.error.message

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_stderr(self):
        shell = StubShell(ShellResult(returncode=3, stdout="", stderr="", command="x"))
        result = await RootExecutor(shell).execute("x")
        assert "exit 3" in result.error.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        ShellTimeoutError("Timeout (30s)"),
        ShellError("su nicht ausführbar"),
    ])
    async def test_exceptions_become_failures(self, error):
        result = await RootExecutor(StubShell(error=error)).execute("id")
        assert result.error.kind == ErrorKind.COMMAND_FAILED

    @pytest.mark.asyncio
    async def test_app_commands(self):
        shell = StubShell(ShellResult(returncode=0, stdout="", stderr="", command=""))
        executor = RootExecutor(shell)
        await force_stop_app(executor)
        await launch_app(executor)

        assert shell.calls[0][0] == "am force-stop com.scopely.monopolygo"
        assert shell.calls[1][0].startswith("monkey -p com.scopely.monopolygo")


class TestLocalShellClient:

    @pytest.mark.asyncio
    async def test_runs_command(self):
        client = LocalShellClient(timeout=5, su_binary="sh")
        result = await client.shell("echo hallo")

        assert result.success
        assert result.output == "hallo"

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        client = LocalShellClient(timeout=5, su_binary="sh")
        result = await client.shell("echo kaputt >&2; exit 4")

        assert result.returncode == 4
        assert "kaputt" in result.stderr

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = LocalShellClient(timeout=5, su_binary="sh")
        with pytest.raises(ShellTimeoutError):
            await client.shell("sleep 5", timeout=1)

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        client = LocalShellClient(timeout=5, su_binary="/nonexistent/su")
        with pytest.raises(ShellError):
            await client.shell("id")

    @pytest.mark.asyncio
    async def test_executor_reports_timeout(self):
        executor = RootExecutor(LocalShellClient(su_binary="sh"), timeout=1)
        result = await executor.execute("sleep 5")
        assert result.error.kind == ErrorKind.COMMAND_FAILED


class TestWrapSu:

    def test_quotes_command(self):
        assert wrap_su('ls "/data/a b"') == 'su -c "ls \\"/data/a b\\""'


class TestQuotePath:

    def test_plain_path(self):
        assert quote_path("/data/a b") == '"/data/a b"'

    def test_escapes_expansion(self):
        assert quote_path("/x$(id)`id`") == '"/x\\$(id)\\`id\\`"'

    def test_escapes_quote_and_backslash(self):
        assert quote_path('/a"b\\c') == '"/a\\"b\\\\c"'

    def test_wrap_su_escapes_expansion(self):
        assert wrap_su('echo "$HOME"') == 'su -c "echo \\"\\$HOME\\""'


class TestHostilePathsInRealShell:
    """Command Substitution in Pfaden darf nie ausgeführt werden."""

    @pytest.mark.asyncio
    async def test_quoted_path_is_literal(self, tmp_path):
        marker = tmp_path / "pwned"
        hostile = f"{tmp_path}/a$(touch {marker})`touch {marker}`\"b\\c"
        client = LocalShellClient(timeout=5, su_binary="sh")

        result = await client.shell(f"printf %s {quote_path(hostile)}")

        assert result.output == hostile
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_wrap_su_survives_outer_shell(self, tmp_path):
        """Wie `adb shell su -c "..."`: äußere Shell, dann innere Shell."""
        marker = tmp_path / "pwned"
        hostile = f"{tmp_path}/a$(touch {marker})`touch {marker}`\"b\\c"
        nested = "sh" + wrap_su(f"printf %s {quote_path(hostile)}")[2:]
        client = LocalShellClient(timeout=5, su_binary="sh")

        result = await client.shell(nested)

        assert result.output == hostile
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_archiver_name_lookup(self, tmp_path):
        marker = tmp_path / "pwned"
        executor = RootExecutor(LocalShellClient(timeout=5, su_binary="sh"))
        archiver = BackupArchiver(executor, FilePermissionManager(executor), backup_root=str(tmp_path))

        async def never_taken(name):
            return False

        name = await archiver.find_unique_account_name(f"x$(touch {marker})", "MGO_", never_taken)

        assert name == f"x$(touch {marker})"
        assert not marker.exists()


class TestAppHelpers:

    @pytest.mark.asyncio
    async def test_has_root(self, executor: FakeExecutor):
        executor.on(r"^id$", "uid=0(root) gid=0(root)")
        assert await has_root(executor)

    @pytest.mark.asyncio
    async def test_has_root_shell_user(self, executor: FakeExecutor):
        executor.on(r"^id$", "uid=2000(shell)")
        assert not await has_root(executor)

    @pytest.mark.asyncio
    async def test_has_root_command_failed(self, executor: FakeExecutor):
        executor.fail(r"^id$")
        assert not await has_root(executor)

    @pytest.mark.asyncio
    async def test_package_installed(self, executor: FakeExecutor):
        executor.on(r"^pm list packages", "package:com.scopely.monopolygo")
        assert await is_package_installed(executor)
        assert executor.commands == ["pm list packages com.scopely.monopolygo"]

    @pytest.mark.asyncio
    async def test_package_missing(self, executor: FakeExecutor):
        assert not await is_package_installed(executor)
