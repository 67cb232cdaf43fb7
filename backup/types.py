"""Common dataclasses shared across backup modules."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


class StepStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return {
            RunStatus.SUCCESS: "SUCCESS",
            RunStatus.WARNING: "SUCCESS WITH WARNINGS",
            RunStatus.FAILED: "FAILED",
        }[self]


@dataclass(slots=True)
class StepOutcome:
    """Result of a single named step."""

    name: str
    title: str
    status: StepStatus
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass(slots=True)
class RunResult:
    run_id: str
    kind: str
    started_utc: str
    finished_utc: Optional[str] = None
    steps: List[StepOutcome] = field(default_factory=list)
    backup_path: Optional[Path] = None
    report_path: Optional[Path] = None
    size_bytes: int = 0

    @property
    def failed_step(self) -> Optional[str]:
        for outcome in self.steps:
            if outcome.status is StepStatus.FAILED:
                return outcome.name
        return None

    @property
    def warning_count(self) -> int:
        return sum(len(outcome.warnings) or (1 if outcome.status is StepStatus.WARNING else 0) for outcome in self.steps)

    @property
    def status(self) -> RunStatus:
        if self.failed_step is not None:
            return RunStatus.FAILED
        if any(outcome.status is StepStatus.WARNING for outcome in self.steps):
            return RunStatus.WARNING
        return RunStatus.SUCCESS

    def outcome(self, name: str) -> Optional[StepOutcome]:
        for item in self.steps:
            if item.name == name:
                return item
        return None


@dataclass(slots=True)
class ArchiveSummary:
    moved: List[Dict[str, str]] = field(default_factory=list)
    kept: List[str] = field(default_factory=list)

    def extend(self, other: "ArchiveSummary") -> None:
        self.moved.extend(other.moved)
        self.kept.extend(other.kept)


@dataclass(slots=True)
class MirrorSummary:
    copied: List[str] = field(default_factory=list)
    unchanged: int = 0
    bytes_copied: int = 0


@dataclass(slots=True)
class ArtifactCheck:
    """Outcome of re-verifying one backup artifact already on disk."""

    kind: str
    path: Path
    ok: bool
    detail: str = ""


@dataclass(slots=True)
class RunSummary:
    id: str
    kind: str
    started_utc: str
    finished_utc: Optional[str]
    status: str
    warnings: int
    size_bytes: int
    failed_step: Optional[str]
    report_path: Optional[str]
    backup_path: Optional[str]


__all__ = [
    "ArchiveSummary",
    "ArtifactCheck",
    "MirrorSummary",
    "RunResult",
    "RunStatus",
    "RunSummary",
    "StepOutcome",
    "StepStatus",
]
