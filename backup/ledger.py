"""SQLite ledger of backup runs."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from core.db import ensure_schema, open_db, transaction

from .types import RunResult, RunSummary

_RUNS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS runs (
  id TEXT NOT NULL,
  kind TEXT NOT NULL,
  started_utc TEXT NOT NULL,
  finished_utc TEXT,
  status TEXT NOT NULL,
  warnings INTEGER NOT NULL DEFAULT 0,
  size_bytes INTEGER NOT NULL DEFAULT 0,
  failed_step TEXT,
  report_path TEXT,
  backup_path TEXT,
  PRIMARY KEY (kind, id)
)
"""

_RUNS_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_runs_started ON runs(started_utc)"

_COLUMNS = "id, kind, started_utc, finished_utc, status, warnings, size_bytes, failed_step, report_path, backup_path"

_UPSERT_SQL = f"""
INSERT INTO runs({_COLUMNS})
VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(kind, id) DO UPDATE SET finished_utc=excluded.finished_utc,
    status=excluded.status,
    warnings=excluded.warnings,
    size_bytes=excluded.size_bytes,
    failed_step=excluded.failed_step,
    report_path=excluded.report_path,
    backup_path=excluded.backup_path
"""


def _row_to_summary(row) -> RunSummary:
    return RunSummary(
        id=str(row[0]),
        kind=str(row[1]),
        started_utc=str(row[2]),
        finished_utc=row[3],
        status=str(row[4]),
        warnings=int(row[5] or 0),
        size_bytes=int(row[6] or 0),
        failed_step=row[7],
        report_path=row[8],
        backup_path=row[9],
    )


class RunLedger:
    """Persist one row per backup run."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        ensure_schema(self._db_path, [_RUNS_TABLE_SQL, _RUNS_INDEX_SQL])

    def record_run(self, result: RunResult) -> None:
        values = (
            result.run_id,
            result.kind,
            result.started_utc,
            result.finished_utc,
            result.status.value,
            result.warning_count,
            int(result.size_bytes),
            result.failed_step,
            str(result.report_path) if result.report_path else None,
            str(result.backup_path) if result.backup_path else None,
        )
        with open_db(self._db_path) as conn, transaction(conn):
            conn.execute(_UPSERT_SQL, values)

    def list_runs(self, *, kind: Optional[str] = None, limit: int = 50) -> List[RunSummary]:
        query = f"SELECT {_COLUMNS} FROM runs"
        params: list = []
        if kind:
            query += " WHERE kind=?"
            params.append(kind)
        query += " ORDER BY started_utc DESC LIMIT ?"
        params.append(int(limit))
        with open_db(self._db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_summary(row) for row in rows]

    def get_run(self, run_id: str, *, kind: Optional[str] = None) -> Optional[RunSummary]:
        query = f"SELECT {_COLUMNS} FROM runs WHERE id=?"
        params: list = [run_id]
        if kind:
            query += " AND kind=?"
            params.append(kind)
        query += " ORDER BY started_utc DESC LIMIT 1"
        with open_db(self._db_path) as conn:
            row = conn.execute(query, params).fetchone()
        return _row_to_summary(row) if row else None


__all__ = ["RunLedger"]
