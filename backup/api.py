"""Public API for backup operations."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.commands import DockerClient
from core.paths import StorageLayout, get_ledger_db_path, resolve_working_dir
from core.settings import load_settings, merge_defaults

from .archive import daily_archive_targets, relocate_aged
from .daily import build_daily_plan
from .errors import BackupError
from .ledger import RunLedger
from .logs import BackupLogger
from .steps import BackupPlan, StepContext, new_run_id, run_plan
from .types import ArchiveSummary, ArtifactCheck, RunResult, RunSummary
from .verify import check_artifact, verify_daily_snapshot, verify_dump_file
from .weekly import build_weekly_plan

_PLANS: Dict[str, Callable[[], BackupPlan]] = {
    "daily": build_daily_plan,
    "weekly": build_weekly_plan,
}


def _recent(directory: Path, pattern: str, cutoff: float) -> List[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.glob(pattern) if path.stat().st_mtime >= cutoff)


class BackupService:
    """Coordinate daily and weekly runs, archival and the run ledger."""

    def __init__(
        self,
        *,
        working_dir: Optional[Path] = None,
        settings: Optional[Dict[str, Any]] = None,
        docker: Optional[DockerClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._working_dir = Path(working_dir or resolve_working_dir())
        if settings is None:
            self._settings = load_settings(self._working_dir)
        else:
            self._settings = merge_defaults(dict(settings))
        runner_cfg = self._settings.get("runner") or {}
        self._docker = docker or DockerClient(
            binary=str(runner_cfg.get("docker_binary") or "docker"),
            timeout=float(runner_cfg.get("command_timeout_s") or 3600),
        )
        self._sleep = sleep
        text_log = (self._settings.get("logging") or {}).get("file")
        self._logger = BackupLogger(self._working_dir, text_log=Path(text_log) if text_log else None)
        self._layout = StorageLayout.from_settings(self._settings)
        self._ledger = RunLedger(get_ledger_db_path(self._working_dir))

    # ------------------------------------------------------------------
    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def layout(self) -> StorageLayout:
        return self._layout

    @property
    def settings(self) -> Dict[str, Any]:
        return self._settings

    # ------------------------------------------------------------------
    def _context(self, kind: str, run_id: Optional[str]) -> StepContext:
        return StepContext(
            run_id=run_id or new_run_id(),
            kind=kind,
            settings=self._settings,
            layout=self._layout,
            docker=self._docker,
            logger=self._logger,
            sleep=self._sleep,
        )

    def run(self, kind: str, *, run_id: Optional[str] = None) -> RunResult:
        """Run the *kind* plan; raises :class:`BackupAborted` on a fatal step."""

        try:
            factory = _PLANS[kind]
        except KeyError as exc:
            raise BackupError(f"unknown backup kind {kind!r}") from exc
        return run_plan(self._context(kind, run_id), factory(), ledger=self._ledger)

    def run_daily(self, *, run_id: Optional[str] = None) -> RunResult:
        return self.run("daily", run_id=run_id)

    def run_weekly(self, *, run_id: Optional[str] = None) -> RunResult:
        return self.run("weekly", run_id=run_id)

    # ------------------------------------------------------------------
    def archive_now(self) -> ArchiveSummary:
        """Relocate aged daily artifacts without taking a new backup."""

        max_age = float((self._settings.get("daily") or {}).get("archive_after_days", 7))
        summary = ArchiveSummary()
        for source, archive, pattern, flags in daily_archive_targets(self._layout):
            summary.extend(relocate_aged(source, archive, pattern=pattern, max_age_days=max_age, **flags))
        self._logger.event(event="archive_applied", phase="archive", ok=True, moved=len(summary.moved), kept=len(summary.kept))
        return summary

    # ------------------------------------------------------------------
    def verify_backups(self, *, kind: Optional[str] = None, days: float = 7.0) -> List[ArtifactCheck]:
        """Re-verify backups written in the last *days* days.

        Daily snapshots have their base backup archives re-read; weekly full
        and tablespace dumps have their format header checked. Artifacts with
        a ``.sha256`` sidecar are also compared against it.
        """

        if kind not in (None, "daily", "weekly"):
            raise BackupError(f"unknown backup kind {kind!r}")
        cutoff = time.time() - float(days) * 86400
        layout = self._layout
        checks: List[ArtifactCheck] = []
        if kind in (None, "daily"):
            for snapshot in _recent(layout.daily_dir, "*", cutoff):
                if snapshot.is_dir():
                    checks.append(check_artifact("daily", snapshot, verify_daily_snapshot))
        if kind in (None, "weekly"):
            for dump in _recent(layout.weekly_dir, "prs_timescaledb_full_*.dump", cutoff):
                checks.append(check_artifact("weekly", dump, verify_dump_file))
            for dump in _recent(layout.tablespace_dir, "prs_*_tablespace_*.dump", cutoff):
                checks.append(check_artifact("weekly", dump, verify_dump_file))

        for check in checks:
            if check.ok:
                self._logger.info("backup_verified", f"Verified: {check.path} ({check.detail})", path=str(check.path))
            else:
                self._logger.error("backup_verify_failed", f"Verification failed: {check.path}: {check.detail}", path=str(check.path))
        failed = sum(1 for check in checks if not check.ok)
        self._logger.event(event="verify_applied", phase="verify", ok=failed == 0, verified=len(checks) - failed, failed=failed)
        return checks

    # ------------------------------------------------------------------
    def list_runs(self, *, kind: Optional[str] = None, limit: int = 50) -> List[RunSummary]:
        return self._ledger.list_runs(kind=kind, limit=limit)

    def get_run(self, run_id: str, *, kind: Optional[str] = None) -> Optional[RunSummary]:
        return self._ledger.get_run(run_id, kind=kind)

    def read_report(self, run_id: str, *, kind: Optional[str] = None) -> str:
        summary = self.get_run(run_id, kind=kind)
        if summary is None:
            raise BackupError(f"Backup run {run_id} not found")
        if not summary.report_path:
            raise BackupError(f"Backup run {run_id} has no report")
        path = Path(summary.report_path)
        if not path.exists():
            raise BackupError(f"Report for {run_id} missing at {path}")
        return path.read_text(encoding="utf-8")


__all__ = ["BackupService"]
