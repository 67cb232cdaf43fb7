import os
import time

import pytest

from backup.errors import BackupAborted, RunIdInUse
from backup.types import RunStatus, StepStatus

RUN_ID = "20261019_030000"


def _age(path, days):
    stamp = time.time() - days * 86400
    os.utime(path, (stamp, stamp))


def test_daily_run_produces_snapshot_and_report(service, fake_docker):
    result = service.run_daily(run_id=RUN_ID)

    assert result.status is RunStatus.SUCCESS
    snapshot = service.layout.daily_snapshot_dir(RUN_ID)
    assert result.backup_path == snapshot
    assert (snapshot / "basebackup" / "base.tar.gz").is_file()
    for view in ("chunks", "compression_settings", "hypertables"):
        assert (snapshot / f"{view}_{RUN_ID}.csv").is_file()
    assert (snapshot / "logs" / f"prs-onprem-redis_{RUN_ID}.log").is_file()
    assert service.layout.cache_dump_path(RUN_ID).is_file()
    assert result.size_bytes > 0

    report = result.report_path.read_text(encoding="utf-8")
    assert f"Backup ID: {RUN_ID}" in report
    assert "Status: SUCCESS" in report
    assert "✓ Redis persistence data" in report

    runs = service.list_runs()
    assert [(run.id, run.kind, run.status) for run in runs] == [(RUN_ID, "daily", "success")]

    basebackup = [argv for kind, argv in fake_docker.calls if kind == "exec" and "pg_basebackup" in argv]
    assert basebackup and "-Ft" in basebackup[0] and "-z" in basebackup[0]


def test_metadata_export_failure_is_only_a_warning(service, fake_docker):
    fake_docker.fail = {"compression_settings"}

    result = service.run_daily(run_id=RUN_ID)

    assert result.status is RunStatus.WARNING
    metadata = result.outcome("backup_metadata")
    assert metadata.status is StepStatus.WARNING
    assert len(metadata.warnings) == 1
    assert "compression settings" in metadata.warnings[0]
    assert result.outcome("verify_backup").status is StepStatus.OK
    assert "Status: SUCCESS WITH WARNINGS" in result.report_path.read_text(encoding="utf-8")


def test_cache_failure_aborts_remaining_steps(service, fake_docker):
    fake_docker.fail = {"BGSAVE"}

    with pytest.raises(BackupAborted) as excinfo:
        service.run_daily(run_id=RUN_ID)

    result = excinfo.value.result
    assert result.failed_step == "backup_cache"
    assert result.status is RunStatus.FAILED
    skipped = [outcome.name for outcome in result.steps if outcome.status is StepStatus.SKIPPED]
    assert skipped == ["backup_logs", "archive_old_backups", "verify_backup"]
    assert not any(kind == "logs" for kind, _ in fake_docker.calls)
    assert "Status: FAILED" in result.report_path.read_text(encoding="utf-8")
    assert service.get_run(RUN_ID).status == "failed"


def test_missing_cache_dump_is_fatal(service, fake_docker):
    fake_docker.missing_copies = {"/data/dump.rdb"}

    with pytest.raises(BackupAborted) as excinfo:
        service.run_daily(run_id=RUN_ID)

    outcome = excinfo.value.result.outcome("backup_cache")
    assert outcome.status is StepStatus.FAILED
    assert "Redis backup file not found" in outcome.error


def test_aged_artifacts_are_relocated_not_deleted(service):
    layout = service.layout
    old_snapshot = layout.daily_dir / "20260901_030000"
    old_snapshot.mkdir(parents=True)
    (old_snapshot / "chunks_20260901_030000.csv").write_text("old\n", encoding="utf-8")
    _age(old_snapshot, 30)
    layout.cache_backup_dir.mkdir(parents=True)
    old_dump = layout.cache_backup_dir / "dump_20260901_030000.rdb"
    old_dump.write_bytes(b"REDIS-old")
    _age(old_dump, 30)

    result = service.run_daily(run_id=RUN_ID)

    assert result.outcome("archive_old_backups").status is StepStatus.OK
    assert not old_snapshot.exists()
    archived = layout.daily_archive_dir / "20260901_030000"
    assert (archived / "chunks_20260901_030000.csv").read_text(encoding="utf-8") == "old\n"
    assert (layout.cache_archive_dir / "dump_20260901_030000.rdb").read_bytes() == b"REDIS-old"
    assert layout.daily_snapshot_dir(RUN_ID).is_dir()
    assert layout.cache_dump_path(RUN_ID).is_file()


def test_check_user_refuses_root(service, fake_docker, monkeypatch):
    service.settings["runner"]["allow_root"] = False
    monkeypatch.setattr("backup.prereq.os.geteuid", lambda: 0, raising=False)

    with pytest.raises(BackupAborted) as excinfo:
        service.run_daily(run_id=RUN_ID)

    assert excinfo.value.result.failed_step == "check_user"
    assert not any(kind == "exec" and "pg_basebackup" in argv for kind, argv in fake_docker.calls)


def test_missing_container_aborts_before_any_backup(service, fake_docker):
    fake_docker.running.discard("prs-onprem-backend")

    with pytest.raises(BackupAborted) as excinfo:
        service.run_daily(run_id=RUN_ID)

    result = excinfo.value.result
    assert result.failed_step == "check_prerequisites"
    assert "prs-onprem-backend" in result.outcome("check_prerequisites").error
    assert not service.layout.daily_snapshot_dir(RUN_ID).exists()


def test_text_log_records_severities(service, fake_docker, backup_settings):
    fake_docker.fail = {"hypertables"}

    service.run_daily(run_id=RUN_ID)

    with open(backup_settings["logging"]["file"], encoding="utf-8") as handle:
        text = handle.read()
    assert f"Starting PRS On-Premises Daily Backup - {RUN_ID}" in text
    assert "WARNING: Failed to backup hypertable information" in text
    assert "SUCCESS: Redis backup completed" in text


def test_reused_run_id_leaves_first_backup_untouched(service, fake_docker):
    service.run_daily(run_id=RUN_ID)
    dump = service.layout.cache_dump_path(RUN_ID)
    first_dump = dump.read_bytes()
    report = service.layout.report_path("daily", RUN_ID)
    first_report = report.read_text(encoding="utf-8")
    fake_docker.calls.clear()

    with pytest.raises(RunIdInUse):
        service.run_daily(run_id=RUN_ID)

    assert dump.read_bytes() == first_dump
    assert report.read_text(encoding="utf-8") == first_report
    assert not any(kind in ("exec", "cp") for kind, _ in fake_docker.calls)
    assert [run.status for run in service.list_runs()] == ["success"]


def test_reused_run_id_is_refused_even_without_a_report(service, fake_docker):
    dump = service.layout.cache_dump_path(RUN_ID)
    dump.parent.mkdir(parents=True)
    dump.write_bytes(b"REDIS-first")

    with pytest.raises(RunIdInUse):
        service.run_daily(run_id=RUN_ID)

    assert dump.read_bytes() == b"REDIS-first"
    assert not service.layout.daily_snapshot_dir(RUN_ID).exists()
    assert fake_docker.calls == []


def test_base_backup_archives_get_checksums(service):
    service.run_daily(run_id=RUN_ID)

    base_dir = service.layout.daily_snapshot_dir(RUN_ID) / "basebackup"
    for name in ("base.tar.gz", "pg_wal.tar.gz"):
        sidecar = base_dir / f"{name}.sha256"
        digest, recorded = sidecar.read_text(encoding="utf-8").split()
        assert recorded == name
        assert len(digest) == 64


def test_checksum_mismatch_fails_verification(service, monkeypatch, make_tar_gz):
    import backup.daily as daily

    real_write = daily.write_checksum

    def write_then_tamper(path):
        sidecar = real_write(path)
        make_tar_gz(path, members={"PG_VERSION": b"15\n"})
        return sidecar

    monkeypatch.setattr(daily, "write_checksum", write_then_tamper)

    with pytest.raises(BackupAborted) as excinfo:
        service.run_daily(run_id=RUN_ID)

    outcome = excinfo.value.result.outcome("verify_backup")
    assert outcome.status is StepStatus.FAILED
    assert "checksum mismatch for base.tar.gz" in outcome.error
