"""Sequential step runner shared by the daily and weekly backups."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from core.commands import DockerClient
from core.paths import StorageLayout
from core.storage import directory_size

from .errors import BackupAborted, RunIdInUse, StepWarning
from .logs import BackupLogger
from .report import write_report
from .types import RunResult, StepOutcome, StepStatus

if TYPE_CHECKING:  # pragma: no cover - typing guard
    from .ledger import RunLedger

StepAction = Callable[["StepContext"], None]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_run_id(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")


@dataclass(slots=True)
class Step:
    name: str
    title: str
    action: StepAction
    fatal: bool = True


@dataclass
class StepContext:
    """State shared by the steps of one run."""

    run_id: str
    kind: str
    settings: Dict[str, Any]
    layout: StorageLayout
    docker: DockerClient
    logger: BackupLogger
    facts: Dict[str, Any] = field(default_factory=dict)
    sleep: Callable[[float], None] = time.sleep
    backup_path: Optional[Path] = None
    _current: Optional[str] = field(default=None, init=False, repr=False)
    _warnings: List[str] = field(default_factory=list, init=False, repr=False)

    def section(self, name: str) -> Dict[str, Any]:
        value = self.settings.get(name)
        return value if isinstance(value, dict) else {}

    def log(self, message: str, **extra: Any) -> None:
        self.logger.info("step_log", message, run_id=self.run_id, step=self._current, **extra)

    def warn(self, message: str, **extra: Any) -> None:
        self._warnings.append(message)
        self.logger.warning("step_warning", message, run_id=self.run_id, step=self._current, **extra)

    def _begin(self, name: str) -> None:
        self._current = name
        self._warnings = []

    def _drain(self) -> List[str]:
        warnings, self._warnings = self._warnings, []
        return warnings


def _no_claims(ctx: StepContext) -> List[Path]:
    return []


@dataclass(slots=True)
class BackupPlan:
    kind: str
    steps: Sequence[Step]
    render_report: Callable[[StepContext, RunResult], str]
    headline: str
    # Paths a run id owns; any of them existing means the id was already used.
    claimed_paths: Callable[[StepContext], List[Path]] = _no_claims


def _run_step(ctx: StepContext, step: Step) -> StepOutcome:
    ctx._begin(step.name)
    ctx.logger.info("step_start", f"{step.title}...", run_id=ctx.run_id, step=step.name)
    start = time.monotonic()
    status = StepStatus.OK
    error: Optional[str] = None
    try:
        step.action(ctx)
    except StepWarning as exc:
        ctx.warn(str(exc))
    except Exception as exc:
        if step.fatal:
            status = StepStatus.FAILED
            error = f"{type(exc).__name__}: {exc}"
            ctx.logger.error("step_failed", f"{step.title} failed: {exc}", run_id=ctx.run_id, step=step.name, error=error)
        else:
            ctx.warn(f"{step.title} failed: {exc}")
    warnings = ctx._drain()
    if status is StepStatus.OK and warnings:
        status = StepStatus.WARNING
    outcome = StepOutcome(
        name=step.name,
        title=step.title,
        status=status,
        warnings=warnings,
        error=error,
        duration_ms=int((time.monotonic() - start) * 1000),
    )
    if status is StepStatus.OK:
        ctx.logger.success("step_ok", f"{step.title} completed", run_id=ctx.run_id, step=step.name)
    elif status is StepStatus.WARNING:
        ctx.logger.info("step_done", run_id=ctx.run_id, step=step.name, warnings=len(warnings))
    return outcome


def run_plan(
    ctx: StepContext,
    plan: BackupPlan,
    *,
    ledger: Optional["RunLedger"] = None,
) -> RunResult:
    """Execute *plan* in order, write its report and record it in the ledger.

    A failing fatal step stops the sequence: the remaining steps are recorded
    as skipped, the report is still written with a FAILED status, and
    :class:`BackupAborted` is raised carrying the partial result. A run id
    whose artifacts already exist raises :class:`RunIdInUse` before any step.
    """

    claim_run_id(ctx, plan)
    result = RunResult(run_id=ctx.run_id, kind=plan.kind, started_utc=_utcnow())
    ctx.logger.event(event="run_start", phase=plan.kind, ok=True, run_id=ctx.run_id)
    ctx.logger.info("run_banner", f"Starting {plan.headline} - {ctx.run_id}", run_id=ctx.run_id)

    aborted_at: Optional[Step] = None
    for step in plan.steps:
        if aborted_at is not None:
            result.steps.append(StepOutcome(name=step.name, title=step.title, status=StepStatus.SKIPPED))
            continue
        outcome = _run_step(ctx, step)
        result.steps.append(outcome)
        if outcome.status is StepStatus.FAILED:
            aborted_at = step
            ctx.logger.error(
                "run_trap",
                f"{plan.headline} failed at step {step.name}",
                run_id=ctx.run_id,
                step=step.name,
            )

    result.backup_path = ctx.backup_path
    if ctx.backup_path is not None and ctx.backup_path.exists():
        result.size_bytes = directory_size(ctx.backup_path)
    result.finished_utc = _utcnow()

    ctx._begin("generate_report")
    report_path = plan_report_path(ctx)
    try:
        write_report(report_path, plan.render_report(ctx, result))
        result.report_path = report_path
        ctx.logger.success("report_written", f"Backup report generated: {report_path}", run_id=ctx.run_id)
    except Exception as exc:
        ctx.logger.error("report_failed", f"Report generation failed: {exc}", run_id=ctx.run_id, error=str(exc))
        result.steps.append(
            StepOutcome(name="generate_report", title="Generating backup report", status=StepStatus.FAILED, error=str(exc))
        )

    if ledger is not None:
        ledger.record_run(result)

    ok = result.failed_step is None
    ctx.logger.event(
        event="run_complete",
        phase=plan.kind,
        ok=ok,
        run_id=ctx.run_id,
        status=result.status.value,
        warnings=result.warning_count,
        size=result.size_bytes,
    )
    if not ok:
        raise BackupAborted(f"{plan.kind} backup {ctx.run_id} failed at step {result.failed_step}", result=result)
    ctx.logger.success("run_ok", f"{plan.headline} completed successfully - {ctx.run_id}", run_id=ctx.run_id)
    return result


def plan_report_path(ctx: StepContext) -> Path:
    return ctx.layout.report_path(ctx.kind, ctx.run_id)


def claim_run_id(ctx: StepContext, plan: BackupPlan) -> None:
    """Refuse a run id whose artifacts already exist, before anything is written."""

    taken = [path for path in [plan_report_path(ctx), *plan.claimed_paths(ctx)] if path.exists()]
    if taken:
        ctx.logger.error(
            "run_id_in_use",
            f"Backup ID {ctx.run_id} already used: {taken[0]} exists",
            run_id=ctx.run_id,
            paths=[str(path) for path in taken],
        )
        raise RunIdInUse(f"{plan.kind} backup {ctx.run_id} already exists ({taken[0]})")


__all__ = ["BackupPlan", "Step", "StepContext", "claim_run_id", "new_run_id", "run_plan"]
