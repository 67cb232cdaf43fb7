import os

import pytest

from backup.errors import BackupVerificationError
from backup.verify import (
    check_artifact,
    ensure_non_empty_dir,
    verify_checksum,
    verify_custom_dump,
    verify_daily_snapshot,
    verify_tar_archive,
    write_checksum,
)


def test_verify_tar_archive_counts_members(tmp_path, make_tar_gz):
    archive = tmp_path / "base.tar.gz"
    make_tar_gz(archive, members={"PG_VERSION": b"16\n", "base/1/112": b"\x00" * 2048})

    assert verify_tar_archive(archive) == 2


def test_truncated_archive_is_rejected(tmp_path, make_tar_gz):
    archive = tmp_path / "base.tar.gz"
    make_tar_gz(archive, members={"big": os.urandom(256 * 1024)})
    payload = archive.read_bytes()
    archive.write_bytes(payload[: len(payload) // 2])

    with pytest.raises(BackupVerificationError):
        verify_tar_archive(archive)


def test_custom_dump_header(tmp_path):
    dump = tmp_path / "full.dump"
    dump.write_bytes(b"PGDMP\x01\x0e\x00")
    verify_custom_dump(dump)

    dump.write_bytes(b"-- plain SQL\n")
    with pytest.raises(BackupVerificationError, match="custom-format"):
        verify_custom_dump(dump)

    dump.write_bytes(b"")
    with pytest.raises(BackupVerificationError, match="empty"):
        verify_custom_dump(dump)

    with pytest.raises(BackupVerificationError, match="not found"):
        verify_custom_dump(tmp_path / "absent.dump")


def test_ensure_non_empty_dir(tmp_path):
    snapshot = tmp_path / "snapshot"
    with pytest.raises(BackupVerificationError, match="missing"):
        ensure_non_empty_dir(snapshot)
    snapshot.mkdir()
    with pytest.raises(BackupVerificationError, match="empty"):
        ensure_non_empty_dir(snapshot)
    (snapshot / "chunks.csv").write_text("x", encoding="utf-8")
    ensure_non_empty_dir(snapshot)


def test_checksum_sidecar_detects_changes(tmp_path):
    dump = tmp_path / "full.dump"
    dump.write_bytes(b"PGDMP" + b"\x01" * 64)

    sidecar = write_checksum(dump)

    assert sidecar.name == "full.dump.sha256"
    assert verify_checksum(dump) is True
    dump.write_bytes(b"PGDMP" + b"\x02" * 64)
    with pytest.raises(BackupVerificationError, match="checksum mismatch"):
        verify_checksum(dump)


def test_checksum_is_written_once(tmp_path):
    dump = tmp_path / "full.dump"
    dump.write_bytes(b"PGDMP")
    write_checksum(dump)
    recorded = (tmp_path / "full.dump.sha256").read_text(encoding="utf-8")

    dump.write_bytes(b"PGDMP-changed")
    with pytest.raises(BackupVerificationError, match="already recorded"):
        write_checksum(dump)

    assert (tmp_path / "full.dump.sha256").read_text(encoding="utf-8") == recorded


def test_missing_sidecar(tmp_path):
    dump = tmp_path / "full.dump"
    dump.write_bytes(b"PGDMP")

    assert verify_checksum(dump, required=False) is False
    with pytest.raises(BackupVerificationError, match="checksum file missing"):
        verify_checksum(dump)


def test_daily_snapshot_check(tmp_path, make_tar_gz):
    snapshot = tmp_path / "20261019_030000"
    make_tar_gz(snapshot / "basebackup" / "base.tar.gz")
    write_checksum(snapshot / "basebackup" / "base.tar.gz")
    make_tar_gz(snapshot / "basebackup" / "pg_wal.tar.gz")

    check = check_artifact("daily", snapshot, verify_daily_snapshot)

    assert check.ok
    assert check.detail == "2 archive(s) readable, 1 checksum(s) matched"

    make_tar_gz(snapshot / "basebackup" / "base.tar.gz", members={"PG_VERSION": b"15\n"})
    check = check_artifact("daily", snapshot, verify_daily_snapshot)

    assert not check.ok
    assert "checksum mismatch for base.tar.gz" in check.detail
