from .client import (
    ADBShellClient,
    ShellConnectionError,
    ShellError,
    ShellResult,
    ShellTimeoutError,
    quote_path,
)
from .executor import Executor, RootExecutor, force_stop_app, has_root, is_package_installed, launch_app
from .local_client import LocalShellClient

__all__ = [
    "ADBShellClient",
    "Executor",
    "LocalShellClient",
    "RootExecutor",
    "ShellConnectionError",
    "ShellError",
    "ShellResult",
    "ShellTimeoutError",
    "force_stop_app",
    "has_root",
    "is_package_installed",
    "launch_app",
    "quote_path",
]
