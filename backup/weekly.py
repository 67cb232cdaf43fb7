"""Weekly backup: full logical dump, per-tier dumps, config export, mirrors, NAS sync."""
from __future__ import annotations

import shlex
from pathlib import Path
from typing import List

from core.commands import CommandError
from core.storage import directory_size, format_size

from .errors import BackupError, BackupVerificationError
from .mirror import copy_into, mirror_tree
from .prereq import check_usage, require_containers
from .report import render_weekly_report
from .services import PostgresTarget
from .steps import BackupPlan, Step, StepContext
from .types import RunResult
from .verify import verify_checksum, verify_custom_dump, write_checksum

TIERS = ("ssd", "hdd")

CONFIG_EXPORTS = (
    ("hypertables", "timescaledb_information.hypertables", "Hypertables configuration"),
    ("compression_settings", "timescaledb_information.compression_settings", "Compression settings"),
    ("continuous_aggregates", "timescaledb_information.continuous_aggregates", "Continuous aggregates"),
    ("retention_policies", "timescaledb_information.drop_chunks_policies", "Retention policies"),
)

# Exports whose absence is reported by the integrity check.
REQUIRED_EXPORTS = ("hypertables", "compression_settings")

STAT_QUERIES = {
    "hypertables": "SELECT count(*) FROM timescaledb_information.hypertables;",
    "chunks": "SELECT count(*) FROM timescaledb_information.chunks;",
    "compressed_chunks": "SELECT count(*) FROM timescaledb_information.chunks WHERE is_compressed = true;",
}


def _postgres(ctx: StepContext) -> PostgresTarget:
    return PostgresTarget(ctx.docker, ctx.settings, warn=ctx.warn)


def check_prerequisites(ctx: StepContext) -> None:
    require_containers(ctx, [str(ctx.section("containers").get("postgres"))])
    abort_pct = float(ctx.section("storage").get("hdd_abort_pct", 85))
    check_usage(ctx, ctx.layout.cold_root, "HDD", abort_pct, fatal=True)
    if not ctx.layout.nas_available():
        ctx.warn("NAS mount not available. Backup will proceed without NAS sync.")


def create_backup_dirs(ctx: StepContext) -> None:
    layout = ctx.layout
    for directory in (layout.weekly_dir, layout.tablespace_dir, layout.uploads_backup_dir):
        directory.mkdir(parents=True, exist_ok=True)
    if layout.nas_available():
        layout.nas_weekly_dir.mkdir(parents=True, exist_ok=True)
    ctx.backup_path = layout.weekly_dir


def backup_full_dump(ctx: StepContext) -> None:
    dest = ctx.layout.full_dump_path(ctx.run_id)
    _postgres(ctx).dump(ctx.run_id, dest.name, dest)
    write_checksum(dest)


def _tier_dump_path(ctx: StepContext, tier: str) -> Path:
    return ctx.layout.tablespace_dir / f"prs_{tier}_tablespace_{ctx.run_id}.dump"


def tier_dump_args(ctx: StepContext, tier: str) -> List[str]:
    """Extra pg_dump arguments for *tier*; a string is split like a shell would."""

    value = (ctx.section("weekly").get("tier_dump_args") or {}).get(tier)
    if value is None:
        return []
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, (list, tuple)) and all(isinstance(arg, (str, int, float)) for arg in value):
        return [str(arg) for arg in value]
    raise BackupError(f"weekly.tier_dump_args.{tier} must be a list of arguments")


def _tier_dump(ctx: StepContext, tier: str) -> None:
    dest = _tier_dump_path(ctx, tier)
    _postgres(ctx).dump(ctx.run_id, dest.name, dest, extra_args=tier_dump_args(ctx, tier))
    write_checksum(dest)


def backup_ssd_tablespace(ctx: StepContext) -> None:
    _tier_dump(ctx, "ssd")


def backup_hdd_tablespace(ctx: StepContext) -> None:
    _tier_dump(ctx, "hdd")


def export_config(ctx: StepContext) -> None:
    postgres = _postgres(ctx)
    for name, relation, label in CONFIG_EXPORTS:
        dest = ctx.layout.weekly_dir / f"{name}_{ctx.run_id}.sql"
        try:
            postgres.query_to_file(f"SELECT * FROM {relation};", dest)
            ctx.log(f"{label} exported")
        except CommandError as exc:
            ctx.warn(f"Failed to export {label.lower()}: {exc}")


def backup_uploads(ctx: StepContext) -> None:
    source = ctx.layout.uploads_dir
    if not source.is_dir():
        ctx.warn("Uploads directory not found")
        return
    summary = mirror_tree(source, ctx.layout.uploads_backup_dir)
    ctx.facts["uploads"] = summary
    ctx.log(
        f"Uploads mirrored: {len(summary.copied)} copied, {summary.unchanged} unchanged",
        copied=len(summary.copied),
        bytes=summary.bytes_copied,
    )


def backup_configurations(ctx: StepContext) -> None:
    target_dir = ctx.layout.config_backup_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    for entry in ctx.section("weekly").get("config_sources") or []:
        if not isinstance(entry, dict) or not entry.get("path"):
            continue
        source = Path(str(entry["path"]))
        name = str(entry.get("name") or source.name)
        if not source.exists():
            continue
        try:
            copy_into(source, target_dir / f"{name}-{ctx.run_id}")
            ctx.log(f"{name} backed up")
        except (OSError, BackupError) as exc:
            ctx.warn(f"Failed to back up {source}: {exc}")


def sync_to_nas(ctx: StepContext) -> None:
    layout = ctx.layout
    if not layout.nas_available():
        ctx.warn("NAS not available, skipping NAS sync")
        return
    try:
        mirror_tree(layout.weekly_dir, layout.nas_weekly_dir)
        ctx.log("Database backups synced to NAS")
    except (OSError, BackupError) as exc:
        ctx.warn(f"Failed to sync database backups to NAS: {exc}")
    else:
        nas_dump = layout.nas_weekly_dir / layout.full_dump_path(ctx.run_id).name
        try:
            verify_checksum(nas_dump)
            ctx.log(f"NAS copy {nas_dump.name} matches its checksum")
        except BackupVerificationError as exc:
            ctx.warn(f"NAS copy failed verification: {exc}")
    if layout.config_backup_root.is_dir():
        try:
            mirror_tree(layout.config_backup_root, layout.nas_config_dir)
            ctx.log("Configuration backups synced to NAS")
        except (OSError, BackupError) as exc:
            ctx.warn(f"Failed to sync configuration backups to NAS: {exc}")


def verify_backup_integrity(ctx: StepContext) -> None:
    main_dump = ctx.layout.full_dump_path(ctx.run_id)
    verify_custom_dump(main_dump)
    verify_checksum(main_dump)
    if ctx.section("weekly").get("pg_restore_list", True):
        try:
            _postgres(ctx).restore_list(main_dump)
        except CommandError as exc:
            raise BackupVerificationError(f"Main database backup is corrupted: {exc}") from exc
    ctx.log("Main database backup is valid")
    ctx.log(f"Total backup size: {format_size(directory_size(ctx.layout.weekly_dir))}")
    for tier in TIERS:
        dump = _tier_dump_path(ctx, tier)
        if not dump.is_file():
            continue
        try:
            verify_checksum(dump)
        except BackupVerificationError as exc:
            ctx.warn(f"{tier.upper()} tablespace backup failed verification: {exc}")
    for name in REQUIRED_EXPORTS:
        export = ctx.layout.weekly_dir / f"{name}_{ctx.run_id}.sql"
        if not export.is_file():
            ctx.warn(f"Configuration file {export.name} missing")
        elif export.stat().st_size == 0:
            ctx.warn(f"Configuration file {export.name} is empty")
        else:
            ctx.log(f"Configuration file {export.name} verified")


def _render_report(ctx: StepContext, result: RunResult) -> str:
    postgres = _postgres(ctx)
    ctx.facts["db_stats"] = {key: postgres.scalar(query) for key, query in STAT_QUERIES.items()}
    return render_weekly_report(ctx, result)


def claimed_paths(ctx: StepContext) -> List[Path]:
    layout = ctx.layout
    paths = [layout.full_dump_path(ctx.run_id)]
    paths += [_tier_dump_path(ctx, tier) for tier in TIERS]
    paths += [layout.weekly_dir / f"{name}_{ctx.run_id}.sql" for name, _, _ in CONFIG_EXPORTS]
    for entry in ctx.section("weekly").get("config_sources") or []:
        if isinstance(entry, dict) and entry.get("name"):
            paths.append(layout.config_backup_dir / f"{entry['name']}-{ctx.run_id}")
    return paths


def build_weekly_plan() -> BackupPlan:
    return BackupPlan(
        kind="weekly",
        headline="PRS On-Premises Weekly Backup",
        render_report=_render_report,
        claimed_paths=claimed_paths,
        steps=(
            Step("check_prerequisites", "Checking prerequisites for weekly backup", check_prerequisites),
            Step("create_backup_dirs", "Creating backup directories", create_backup_dirs),
            Step("backup_full_dump", "TimescaleDB full database backup", backup_full_dump),
            Step("backup_ssd_tablespace", "SSD tablespace backup", backup_ssd_tablespace, fatal=False),
            Step("backup_hdd_tablespace", "HDD tablespace backup", backup_hdd_tablespace, fatal=False),
            Step("export_config", "TimescaleDB configuration export", export_config, fatal=False),
            Step("backup_uploads", "File uploads backup", backup_uploads, fatal=False),
            Step("backup_configurations", "System configurations backup", backup_configurations, fatal=False),
            Step("sync_to_nas", "NAS synchronization", sync_to_nas, fatal=False),
            Step("verify_backup_integrity", "Backup integrity verification", verify_backup_integrity),
        ),
    )


__all__ = ["CONFIG_EXPORTS", "build_weekly_plan"]
