"""Error hierarchy for backup operations."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing guard
    from .types import RunResult


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class StepWarning(BackupError):
    """A step failed in a way that must not stop the run."""


class StepFailed(BackupError):
    """A step failed and the run cannot continue."""


class PrerequisiteError(StepFailed):
    """Raised when the environment is not ready for a backup run."""


class BackupVerificationError(StepFailed):
    """Raised when verification of a snapshot fails."""


class RunIdInUse(BackupError):
    """Raised when a run id already has artifacts on disk."""


class BackupAborted(BackupError):
    """Raised once a fatal step failure has stopped the run."""

    def __init__(self, message: str, *, result: Optional["RunResult"] = None) -> None:
        super().__init__(message)
        self.result = result


__all__ = [
    "BackupAborted",
    "BackupError",
    "BackupVerificationError",
    "PrerequisiteError",
    "RunIdInUse",
    "StepFailed",
    "StepWarning",
]
