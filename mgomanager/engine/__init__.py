from .archiver import BackupArchiver, SnapshotItem, SnapshotReport
from .db_ops import AccountRepository, LogRepository
from .exporter import ExportService
from .permissions import FilePermissionManager
from .ssh_sync import SSHSyncService, SyncResult

__all__ = [
    "AccountRepository",
    "BackupArchiver",
    "ExportService",
    "FilePermissionManager",
    "LogRepository",
    "SSHSyncService",
    "SnapshotItem",
    "SnapshotReport",
    "SyncResult",
]
