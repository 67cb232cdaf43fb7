"""Daily backup: hot data snapshot, metadata, cache, logs, archival, verification."""
from __future__ import annotations

from pathlib import Path

from core.commands import CommandError
from core.storage import directory_size, format_size

from .archive import daily_archive_targets, relocate_aged
from .errors import BackupError, StepFailed
from .mirror import mirror_tree
from .prereq import check_not_root, check_usage, require_containers
from .report import render_daily_report
from .services import CacheTarget, PostgresTarget
from .steps import BackupPlan, Step, StepContext
from .types import ArchiveSummary
from .verify import ensure_non_empty_dir, verify_checksum, verify_tar_archive, write_checksum

METADATA_VIEWS = (
    ("chunks", "chunk metadata"),
    ("compression_settings", "compression settings"),
    ("hypertables", "hypertable information"),
)


def _containers(ctx: StepContext) -> list[str]:
    return [str(name) for name in ctx.section("containers").values() if name]


def check_user(ctx: StepContext) -> None:
    check_not_root(ctx)


def check_prerequisites(ctx: StepContext) -> None:
    require_containers(ctx, _containers(ctx))
    storage_cfg = ctx.section("storage")
    check_usage(ctx, ctx.layout.hot_root, "SSD", float(storage_cfg.get("ssd_warn_pct", 85)))
    check_usage(ctx, ctx.layout.cold_root, "HDD", float(storage_cfg.get("hdd_warn_pct", 80)))


def create_backup_dirs(ctx: StepContext) -> None:
    layout = ctx.layout
    snapshot = layout.daily_snapshot_dir(ctx.run_id)
    layout.daily_dir.mkdir(parents=True, exist_ok=True)
    snapshot.mkdir()
    for directory in (
        layout.daily_archive_dir,
        layout.cache_backup_dir,
        layout.cache_archive_dir,
        layout.logs_archive_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)
    ctx.backup_path = snapshot


def backup_hot_data(ctx: StepContext) -> None:
    base_dir = ctx.layout.daily_snapshot_dir(ctx.run_id) / "basebackup"
    postgres = PostgresTarget(ctx.docker, ctx.settings, warn=ctx.warn)
    postgres.base_backup(ctx.run_id, base_dir)
    for archive in sorted(base_dir.glob("*.tar.gz")):
        write_checksum(archive)


def backup_metadata(ctx: StepContext) -> None:
    postgres = PostgresTarget(ctx.docker, ctx.settings, warn=ctx.warn)
    snapshot = ctx.layout.daily_snapshot_dir(ctx.run_id)
    for view, label in METADATA_VIEWS:
        try:
            postgres.export_view_csv(view, ctx.run_id, snapshot / f"{view}_{ctx.run_id}.csv")
        except CommandError as exc:
            ctx.warn(f"Failed to backup {label}: {exc}")


def backup_cache(ctx: StepContext) -> None:
    cache = CacheTarget(ctx.docker, ctx.settings)
    cache.trigger_save()
    ctx.sleep(float(ctx.section("daily").get("cache_save_wait_s", 10)))
    dest = ctx.layout.cache_dump_path(ctx.run_id)
    cache.fetch_dump(dest)
    if not dest.is_file():
        raise StepFailed("Redis backup file not found")


def backup_logs(ctx: StepContext) -> None:
    logs_dir = ctx.layout.daily_snapshot_dir(ctx.run_id) / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    for container in _containers(ctx):
        try:
            ctx.docker.save_logs(container, logs_dir / f"{container}_{ctx.run_id}.log")
            ctx.log(f"Backed up logs for {container}")
        except CommandError as exc:
            ctx.warn(f"Failed to backup logs for {container}: {exc}")
    system_logs = ctx.layout.hot_logs_dir
    if system_logs.is_dir():
        try:
            mirror_tree(system_logs, logs_dir / "system")
        except (OSError, BackupError) as exc:
            ctx.warn(f"Failed to copy system logs: {exc}")


def archive_old_backups(ctx: StepContext) -> None:
    max_age = float(ctx.section("daily").get("archive_after_days", 7))
    summary = ArchiveSummary()
    for source, archive, pattern, flags in daily_archive_targets(ctx.layout):
        try:
            summary.extend(relocate_aged(source, archive, pattern=pattern, max_age_days=max_age, **flags))
        except (OSError, BackupError) as exc:
            ctx.warn(f"Failed to archive {source}: {exc}")
    ctx.facts["archived"] = summary
    ctx.log(f"Relocated {len(summary.moved)} item(s) to the archive tier", moved=len(summary.moved))


def verify_backup(ctx: StepContext) -> None:
    snapshot = ctx.layout.daily_snapshot_dir(ctx.run_id)
    ensure_non_empty_dir(snapshot)
    ctx.log(f"Backup size: {format_size(directory_size(snapshot))}")

    base_dir = snapshot / "basebackup"
    base_archive = base_dir / "base.tar.gz"
    if base_archive.exists():
        for archive in sorted(base_dir.glob("*.tar.gz")):
            members = verify_tar_archive(archive)
            verify_checksum(archive)
            ctx.log(f"PostgreSQL backup archive {archive.name} is valid", members=members)
    else:
        ctx.warn("PostgreSQL base archive base.tar.gz not found")

    if ctx.layout.cache_dump_path(ctx.run_id).is_file():
        ctx.log("Redis backup file exists")
    else:
        ctx.warn("Redis backup file not found")


def claimed_paths(ctx: StepContext) -> list[Path]:
    return [ctx.layout.daily_snapshot_dir(ctx.run_id), ctx.layout.cache_dump_path(ctx.run_id)]


def build_daily_plan() -> BackupPlan:
    return BackupPlan(
        kind="daily",
        headline="PRS On-Premises Daily Backup",
        render_report=render_daily_report,
        claimed_paths=claimed_paths,
        steps=(
            Step("check_user", "Checking invoking user", check_user),
            Step("check_prerequisites", "Checking prerequisites", check_prerequisites),
            Step("create_backup_dirs", "Creating backup directories", create_backup_dirs),
            Step("backup_hot_data", "TimescaleDB hot data backup", backup_hot_data),
            Step("backup_metadata", "TimescaleDB metadata backup", backup_metadata, fatal=False),
            Step("backup_cache", "Redis backup", backup_cache),
            Step("backup_logs", "Application logs backup", backup_logs, fatal=False),
            Step("archive_old_backups", "Archiving old backups to HDD", archive_old_backups, fatal=False),
            Step("verify_backup", "Backup integrity verification", verify_backup),
        ),
    )


__all__ = ["METADATA_VIEWS", "build_daily_plan"]
