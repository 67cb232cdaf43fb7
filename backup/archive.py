"""Zero-deletion archival: relocate aged artifacts to the cold tier."""
from __future__ import annotations

import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from core.paths import StorageLayout

from .errors import BackupError
from .types import ArchiveSummary


def _unique_destination(archive_dir: Path, name: str) -> Path:
    candidate = archive_dir / name
    counter = 1
    while candidate.exists():
        candidate = archive_dir / f"{name}.{counter}"
        counter += 1
    return candidate


def _modified(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def relocate_aged(
    source_dir: Path,
    archive_dir: Path,
    *,
    pattern: str,
    max_age_days: float,
    now: Optional[datetime] = None,
    dirs_only: bool = False,
    files_only: bool = False,
) -> ArchiveSummary:
    """Move entries of *source_dir* matching *pattern* older than *max_age_days*.

    Entries are moved, never deleted. A name already present in *archive_dir*
    gets a numeric suffix so an earlier archived copy is never replaced.
    """

    if dirs_only and files_only:
        raise BackupError("dirs_only and files_only are mutually exclusive")
    summary = ArchiveSummary()
    if not source_dir.is_dir():
        return summary
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
    if source_dir.resolve() == archive_dir.resolve():
        raise BackupError(f"archive directory {archive_dir} equals source")

    for entry in sorted(source_dir.glob(pattern)):
        if dirs_only and not entry.is_dir():
            continue
        if files_only and not entry.is_file():
            continue
        if _modified(entry) >= cutoff:
            summary.kept.append(entry.name)
            continue
        archive_dir.mkdir(parents=True, exist_ok=True)
        target = _unique_destination(archive_dir, entry.name)
        shutil.move(str(entry), str(target))
        summary.moved.append({"source": str(entry), "dest": str(target)})
    return summary


def daily_archive_targets(layout: StorageLayout) -> List[Tuple[Path, Path, str, Dict[str, bool]]]:
    """Source, archive, glob and type filter for each hot-tier artifact family."""

    return [
        (layout.daily_dir, layout.daily_archive_dir, "20*", {"dirs_only": True}),
        (layout.cache_backup_dir, layout.cache_archive_dir, "dump_*.rdb", {"files_only": True}),
        (layout.hot_logs_dir, layout.logs_archive_dir, "*.log", {"files_only": True}),
    ]


__all__ = ["daily_archive_targets", "relocate_aged"]
