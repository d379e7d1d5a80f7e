from .backup import BackupFlow, BackupRequest, BackupResult
from .delete import DeleteFlow, DeleteResult
from .restore import RestoreFlow, RestoreResult, RestoreState
from .steps import FlowStep, FlowStepStatus

__all__ = [
    "BackupFlow",
    "BackupRequest",
    "BackupResult",
    "DeleteFlow",
    "DeleteResult",
    "FlowStep",
    "FlowStepStatus",
    "RestoreFlow",
    "RestoreResult",
    "RestoreState",
]
