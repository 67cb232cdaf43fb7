"""Local HTTP surface for inspecting backup runs."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .api import BackupService
from .errors import BackupError
from .types import RunSummary


class RunModel(BaseModel):
    """One recorded backup run."""

    id: str = Field(..., description="Run identifier, the start time as YYYYMMDD_HHMMSS.")
    kind: str = Field(..., description="Either daily or weekly.")
    started_utc: str
    finished_utc: Optional[str] = None
    status: str = Field(..., description="success, warning or failed.")
    warnings: int = Field(0, ge=0)
    size_bytes: int = Field(0, ge=0)
    failed_step: Optional[str] = Field(None, description="Step that aborted the run, when it failed.")
    report_path: Optional[str] = None
    backup_path: Optional[str] = None

    @classmethod
    def from_summary(cls, summary: RunSummary) -> "RunModel":
        return cls(
            id=summary.id,
            kind=summary.kind,
            started_utc=summary.started_utc,
            finished_utc=summary.finished_utc,
            status=summary.status,
            warnings=summary.warnings,
            size_bytes=summary.size_bytes,
            failed_step=summary.failed_step,
            report_path=summary.report_path,
            backup_path=summary.backup_path,
        )


class RunsResponse(BaseModel):
    runs: List[RunModel]


class ArchiveResponse(BaseModel):
    moved: int = Field(..., ge=0, description="Entries relocated to the archive tier.")
    kept: int = Field(..., ge=0, description="Entries still younger than the age threshold.")
    destinations: List[str] = Field(default_factory=list)



class ArtifactCheckModel(BaseModel):
    kind: str
    path: str
    ok: bool
    detail: str = ""


class VerifyResponse(BaseModel):
    verified: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    checks: List[ArtifactCheckModel]

def build_router(service: BackupService) -> APIRouter:
    router = APIRouter(prefix="/backups", tags=["backups"])

    @router.get("/runs", response_model=RunsResponse)
    def list_runs(kind: Optional[str] = Query(None, pattern="^(daily|weekly)$"), limit: int = Query(50, ge=1, le=500)):
        return RunsResponse(runs=[RunModel.from_summary(item) for item in service.list_runs(kind=kind, limit=limit)])

    @router.get("/runs/{run_id}", response_model=RunModel)
    def get_run(run_id: str, kind: Optional[str] = None):
        summary = service.get_run(run_id, kind=kind)
        if summary is None:
            raise HTTPException(status_code=404, detail=f"run {run_id} not found")
        return RunModel.from_summary(summary)

    @router.get("/runs/{run_id}/report", response_class=PlainTextResponse)
    def get_report(run_id: str, kind: Optional[str] = None):
        try:
            return PlainTextResponse(service.read_report(run_id, kind=kind))
        except BackupError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @router.post("/archive", response_model=ArchiveResponse)
    def archive():
        summary = service.archive_now()
        return ArchiveResponse(
            moved=len(summary.moved),
            kept=len(summary.kept),
            destinations=[entry["dest"] for entry in summary.moved],
        )

    @router.post("/verify", response_model=VerifyResponse)
    def verify(kind: Optional[str] = Query(None, pattern="^(daily|weekly)$"), days: float = Query(7.0, gt=0)):
        checks = service.verify_backups(kind=kind, days=days)
        failed = sum(1 for check in checks if not check.ok)
        return VerifyResponse(
            verified=len(checks) - failed,
            failed=failed,
            checks=[ArtifactCheckModel(kind=check.kind, path=str(check.path), ok=check.ok, detail=check.detail) for check in checks],
        )

    return router


def create_app(service: BackupService) -> FastAPI:
    app = FastAPI(title="PRS Backup", version=__version__)
    app.include_router(build_router(service))
    return app


__all__ = ["ArchiveResponse", "RunModel", "RunsResponse", "VerifyResponse", "build_router", "create_app"]
