from .account import AccountCreate, AccountRead, AccountUpdate, SusLevel
from .log import LogEntry, LogLevel
from .permissions import FilePermissions, normalize_mode
from .result import CommandResult, EngineError, ErrorKind, Result
from .ssh import AuthMethod, SSHConfig

__all__ = [
    # Account
    "AccountCreate",
    "AccountRead",
    "AccountUpdate",
    "SusLevel",
    # Permissions
    "FilePermissions",
    "normalize_mode",
    # Results
    "CommandResult",
    "EngineError",
    "ErrorKind",
    "Result",
    # SSH
    "AuthMethod",
    "SSHConfig",
    # Logs
    "LogEntry",
    "LogLevel",
]
