"""Daily and weekly backup orchestration for PRS on-premises deployments."""
from __future__ import annotations

from .api import BackupService
from .errors import BackupAborted, BackupError, StepWarning
from .types import ArchiveSummary, RunResult, RunStatus, StepStatus

__version__ = "1.0.0"

__all__ = [
    "ArchiveSummary",
    "BackupAborted",
    "BackupError",
    "BackupService",
    "RunResult",
    "RunStatus",
    "StepStatus",
    "StepWarning",
]
