from pathlib import Path

from core import paths as core_paths
from core.paths import StorageLayout


def test_resolve_working_dir_honours_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("PRS_BACKUP_HOME", str(tmp_path / "state"))

    working_dir = core_paths.resolve_working_dir()

    assert working_dir == (tmp_path / "state").resolve()
    assert (working_dir / "data").is_dir()
    assert (working_dir / "logs").is_dir()
    assert core_paths.get_ledger_db_path(working_dir) == working_dir / "data" / "backup_runs.db"


def test_layout_from_settings_uses_tier_roots():
    layout = StorageLayout.from_settings({"storage": {"hot_root": "/srv/ssd", "cold_root": "/srv/hdd"}})

    assert layout.nas_root == Path("/mnt/nas")
    assert layout.daily_snapshot_dir("20261019_030000") == Path("/srv/ssd/backups/daily/20261019_030000")
    assert layout.daily_archive_dir == Path("/srv/hdd/backups/daily-archive")
    assert layout.cache_dump_path("20261019_030000") == Path("/srv/ssd/redis-backups/dump_20261019_030000.rdb")
    assert layout.full_dump_path("20261018_040000") == Path(
        "/srv/hdd/postgres-backups/weekly/prs_timescaledb_full_20261018_040000.dump"
    )
    assert layout.report_path("weekly", "20261018_040000") == Path(
        "/srv/hdd/backup-reports/weekly_backup_report_20261018_040000.txt"
    )


def test_nas_available_requires_directory(tmp_path):
    layout = StorageLayout(hot_root=tmp_path, cold_root=tmp_path, nas_root=tmp_path / "nas")
    assert not layout.nas_available()
    (tmp_path / "nas").mkdir()
    assert layout.nas_available()
