from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

__all__ = [
    "StorageLayout",
    "ensure_working_dir_structure",
    "get_data_dir",
    "get_default_settings_paths",
    "get_ledger_db_path",
    "get_logs_dir",
    "resolve_working_dir",
]

HOME_ENV = "PRS_BACKUP_HOME"
_SYSTEM_SETTINGS = Path("/etc/prs-backup/settings.json")


def _usable_dir(candidate: Path) -> Optional[Path]:
    try:
        ensure_working_dir_structure(candidate)
    except OSError:
        return None
    return candidate if os.access(candidate, os.W_OK | os.X_OK) else None


def resolve_working_dir() -> Path:
    """Resolve the state directory holding settings, ledger and event logs.

    ``$PRS_BACKUP_HOME`` wins when it can be created and written; otherwise
    ``~/.prs-backup`` is used.
    """

    override = os.environ.get(HOME_ENV)
    if override:
        resolved = _usable_dir(Path(os.path.expandvars(override)).expanduser().resolve())
        if resolved is not None:
            return resolved
    fallback = Path.home() / ".prs-backup"
    ensure_working_dir_structure(fallback)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def get_ledger_db_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "backup_runs.db"


def ensure_working_dir_structure(working_dir: Path) -> None:
    get_data_dir(working_dir).mkdir(parents=True, exist_ok=True)
    get_logs_dir(working_dir).mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> list[Path]:
    """Per-user settings first, then the system-wide file."""

    return [working_dir / "settings.json", _SYSTEM_SETTINGS]


@dataclass(slots=True)
class StorageLayout:
    """Every directory the backup runners read from or write to."""

    hot_root: Path
    cold_root: Path
    nas_root: Path

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "StorageLayout":
        storage = settings.get("storage") or {}
        return cls(
            hot_root=Path(str(storage.get("hot_root") or "/mnt/ssd")),
            cold_root=Path(str(storage.get("cold_root") or "/mnt/hdd")),
            nas_root=Path(str(storage.get("nas_root") or "/mnt/nas")),
        )

    # daily ------------------------------------------------------------
    @property
    def daily_dir(self) -> Path:
        return self.hot_root / "backups" / "daily"

    @property
    def daily_archive_dir(self) -> Path:
        return self.cold_root / "backups" / "daily-archive"

    @property
    def cache_backup_dir(self) -> Path:
        return self.hot_root / "redis-backups"

    @property
    def cache_archive_dir(self) -> Path:
        return self.cold_root / "redis-archive"

    @property
    def hot_logs_dir(self) -> Path:
        return self.hot_root / "logs"

    @property
    def logs_archive_dir(self) -> Path:
        return self.cold_root / "logs-archive"

    # weekly -----------------------------------------------------------
    @property
    def weekly_dir(self) -> Path:
        return self.cold_root / "postgres-backups" / "weekly"

    @property
    def tablespace_dir(self) -> Path:
        return self.cold_root / "timescaledb-tablespaces"

    @property
    def uploads_dir(self) -> Path:
        return self.hot_root / "uploads"

    @property
    def uploads_backup_dir(self) -> Path:
        return self.cold_root / "uploads-backup"

    @property
    def config_backup_root(self) -> Path:
        return self.cold_root / "config-backups"

    @property
    def config_backup_dir(self) -> Path:
        return self.config_backup_root / "weekly"

    @property
    def nas_weekly_dir(self) -> Path:
        return self.nas_root / "prs-backups" / "weekly"

    @property
    def nas_config_dir(self) -> Path:
        return self.nas_root / "prs-backups" / "config-backups"

    # shared -----------------------------------------------------------
    @property
    def report_dir(self) -> Path:
        return self.cold_root / "backup-reports"

    def nas_available(self) -> bool:
        return self.nas_root.is_dir()

    def daily_snapshot_dir(self, run_id: str) -> Path:
        return self.daily_dir / run_id

    def cache_dump_path(self, run_id: str) -> Path:
        return self.cache_backup_dir / f"dump_{run_id}.rdb"

    def full_dump_path(self, run_id: str) -> Path:
        return self.weekly_dir / f"prs_timescaledb_full_{run_id}.dump"

    def report_path(self, kind: str, run_id: str) -> Path:
        return self.report_dir / f"{kind}_backup_report_{run_id}.txt"
