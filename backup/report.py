"""Text reports written once at the end of every run."""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence, Tuple

from core.storage import describe_usage, directory_size, format_size

from .errors import BackupError
from .types import RunResult, StepStatus

if TYPE_CHECKING:  # pragma: no cover - typing guard
    from .steps import StepContext

_MARKS = {
    StepStatus.OK: "✓",
    StepStatus.WARNING: "!",
    StepStatus.FAILED: "✗",
    StepStatus.SKIPPED: "-",
}


def write_report(path: Path, text: str) -> Path:
    """Create *path* with *text*; an existing report is never replaced."""

    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with path.open("x", encoding="utf-8") as handle:
            handle.write(text)
    except FileExistsError as exc:
        raise BackupError(f"report already exists: {path}") from exc
    return path


def _heading(title: str, underline: str = "=") -> List[str]:
    return [title, underline * len(title)]


def _size_of(path: Optional[Path]) -> str:
    if path is None or not path.exists():
        return "N/A"
    return format_size(directory_size(path))


def checklist(result: RunResult, components: Sequence[Tuple[str, str]]) -> List[str]:
    lines = []
    for step_name, label in components:
        outcome = result.outcome(step_name)
        mark = _MARKS[outcome.status] if outcome else "-"
        lines.append(f"{mark} {label}")
    return lines


def _problems(result: RunResult) -> List[str]:
    lines: List[str] = []
    for outcome in result.steps:
        if outcome.error:
            lines.append(f"- {outcome.name}: {outcome.error}")
        for warning in outcome.warnings:
            lines.append(f"- {outcome.name}: {warning}")
    return lines


def _bulleted(pairs: Iterable[Tuple[str, str]]) -> List[str]:
    return [f"- {label}: {value}" for label, value in pairs]


_DAILY_COMPONENTS = (
    ("backup_hot_data", "TimescaleDB hot data (SSD tablespace)"),
    ("backup_metadata", "TimescaleDB metadata (chunks, compression, hypertables)"),
    ("backup_cache", "Redis persistence data"),
    ("backup_logs", "Application and container logs"),
    ("archive_old_backups", "Archival of aged backups to HDD"),
    ("verify_backup", "Backup integrity verification"),
)

_WEEKLY_COMPONENTS = (
    ("backup_full_dump", "TimescaleDB Full Database Backup"),
    ("backup_ssd_tablespace", "SSD Tablespace Backup"),
    ("backup_hdd_tablespace", "HDD Tablespace Backup"),
    ("export_config", "TimescaleDB Configuration Export"),
    ("backup_uploads", "File Uploads Backup"),
    ("backup_configurations", "System Configuration Backup"),
    ("sync_to_nas", "NAS Synchronization"),
    ("verify_backup_integrity", "Backup Integrity Verification"),
)


def render_daily_report(ctx: "StepContext", result: RunResult) -> str:
    layout = ctx.layout
    lines = _heading("PRS On-Premises Daily Backup Report")
    lines += [
        f"Date: {datetime.now().strftime('%a %d %b %Y %H:%M:%S')}",
        f"Backup ID: {result.run_id}",
        "",
        "Backup Locations:",
    ]
    lines += _bulleted(
        [
            ("Hot Backup", str(layout.daily_snapshot_dir(result.run_id))),
            ("Archive Location", str(layout.daily_archive_dir)),
            ("Redis Backup", str(layout.cache_dump_path(result.run_id))),
        ]
    )
    lines += ["", "Backup Contents:"]
    lines += checklist(result, _DAILY_COMPONENTS)
    archived = ctx.facts.get("archived")
    if archived is not None:
        lines += ["", f"Relocated to archive this run: {len(archived.moved)}"]
    lines += ["", "Storage Usage:"]
    lines += _bulleted(
        [
            ("SSD Usage", describe_usage(layout.hot_root)),
            ("HDD Usage", describe_usage(layout.cold_root)),
        ]
    )
    lines += ["", f"Backup Size: {_size_of(result.backup_path)}", ""]
    problems = _problems(result)
    if problems:
        lines += ["Warnings and Errors:", *problems, ""]
    lines.append(f"Status: {result.status.label}")
    return "\n".join(lines) + "\n"


def render_weekly_report(ctx: "StepContext", result: RunResult) -> str:
    layout = ctx.layout
    stats = ctx.facts.get("db_stats") or {}
    interval = int(ctx.section("weekly").get("interval_days") or 7)
    main_dump = layout.full_dump_path(result.run_id)

    lines = _heading("PRS On-Premises Weekly Backup Report")
    lines += [
        f"Date: {datetime.now().strftime('%a %d %b %Y %H:%M:%S')}",
        f"Backup ID: {result.run_id}",
        "",
    ]
    lines += _heading("Backup Components:")
    lines += checklist(result, _WEEKLY_COMPONENTS)
    lines += [""]
    lines += _heading("Backup Locations:")
    lines += _bulleted(
        [
            ("Main Backup", f"{layout.weekly_dir}/"),
            ("Tablespace Backups", f"{layout.tablespace_dir}/"),
            ("Uploads Backup", f"{layout.uploads_backup_dir}/"),
            ("Config Backup", f"{layout.config_backup_dir}/"),
            ("NAS Backup", f"{layout.nas_weekly_dir}/"),
        ]
    )
    lines += [""]
    lines += _heading("Backup Sizes:")
    lines += _bulleted(
        [
            ("Main Database Backup", _size_of(main_dump)),
            ("Total Weekly Backup", _size_of(layout.weekly_dir)),
            ("Uploads Backup", _size_of(layout.uploads_backup_dir)),
        ]
    )
    lines += [""]
    lines += _heading("Storage Usage:")
    lines += _bulleted(
        [
            ("SSD Usage", describe_usage(layout.hot_root)),
            ("HDD Usage", describe_usage(layout.cold_root)),
            ("NAS Usage", describe_usage(layout.nas_root)),
        ]
    )
    lines += [""]
    lines += _heading("TimescaleDB Statistics:")
    lines += _bulleted(
        [
            ("Hypertables", stats.get("hypertables") or "N/A"),
            ("Chunks", stats.get("chunks") or "N/A"),
            ("Compressed Chunks", stats.get("compressed_chunks") or "N/A"),
        ]
    )
    lines += [""]
    problems = _problems(result)
    if problems:
        lines += _heading("Warnings and Errors:")
        lines += problems + [""]
    next_run = (datetime.now() + timedelta(days=interval)).strftime("%Y-%m-%d")
    lines += [
        f"Backup Status: {result.status.label}",
        f"Next Weekly Backup: {next_run}",
        "",
        "Zero-Deletion Policy: ENFORCED",
        "All backups are preserved permanently according to policy.",
    ]
    return "\n".join(lines) + "\n"


__all__ = ["checklist", "render_daily_report", "render_weekly_report", "write_report"]
