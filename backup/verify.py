"""Verify backup artifacts on disk."""
from __future__ import annotations

import hashlib
import tarfile
from pathlib import Path
from typing import Callable

from .errors import BackupVerificationError
from .types import ArtifactCheck

_CUSTOM_DUMP_MAGIC = b"PGDMP"

CHECKSUM_SUFFIX = ".sha256"


def ensure_non_empty_dir(path: Path) -> None:
    if not path.is_dir():
        raise BackupVerificationError(f"backup directory missing: {path}")
    if not any(path.iterdir()):
        raise BackupVerificationError(f"backup directory is empty: {path}")


def verify_tar_archive(path: Path) -> int:
    """Read every member header of a (compressed) tar archive.

    Returns the member count; raises when the archive is truncated or corrupt.
    """

    try:
        with tarfile.open(path, "r:*") as archive:
            count = 0
            for member in archive:
                count += 1
                if member.isfile():
                    handle = archive.extractfile(member)
                    if handle is not None:
                        while handle.read(1024 * 1024):
                            pass
            return count
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise BackupVerificationError(f"archive {path.name} is corrupted: {exc}") from exc


def verify_custom_dump(path: Path) -> None:
    if not path.exists():
        raise BackupVerificationError(f"dump file not found: {path}")
    if path.stat().st_size == 0:
        raise BackupVerificationError(f"dump file is empty: {path}")
    with path.open("rb") as handle:
        header = handle.read(len(_CUSTOM_DUMP_MAGIC))
    if header != _CUSTOM_DUMP_MAGIC:
        raise BackupVerificationError(f"{path.name} is not a custom-format dump")


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def checksum_path(path: Path) -> Path:
    return path.with_name(path.name + CHECKSUM_SUFFIX)


def write_checksum(path: Path) -> Path:
    """Write ``<path>.sha256`` in ``sha256sum`` format; an existing sidecar is kept."""

    sidecar = checksum_path(path)
    line = f"{sha256_file(path)}  {path.name}\n"
    try:
        with sidecar.open("x", encoding="utf-8") as handle:
            handle.write(line)
    except FileExistsError as exc:
        raise BackupVerificationError(f"checksum already recorded: {sidecar}") from exc
    return sidecar


def verify_checksum(path: Path, *, required: bool = True) -> bool:
    """Compare *path* with its sidecar.

    Returns False when no sidecar exists and *required* is off; raises on a
    mismatch, an unreadable sidecar or a missing one when *required*.
    """

    sidecar = checksum_path(path)
    if not sidecar.is_file():
        if required:
            raise BackupVerificationError(f"checksum file missing for {path.name}")
        return False
    fields = sidecar.read_text(encoding="utf-8").split()
    if not fields:
        raise BackupVerificationError(f"checksum file {sidecar.name} is empty")
    if not path.is_file():
        raise BackupVerificationError(f"{path.name} not found")
    if sha256_file(path) != fields[0].lower():
        raise BackupVerificationError(f"checksum mismatch for {path.name}")
    return True


def verify_daily_snapshot(snapshot: Path) -> str:
    """Re-read the base backup archives of a daily snapshot and their checksums."""

    ensure_non_empty_dir(snapshot)
    archives = sorted((snapshot / "basebackup").glob("*.tar.gz"))
    if not archives:
        raise BackupVerificationError(f"no base backup archives in {snapshot.name}")
    matched = 0
    for archive in archives:
        verify_tar_archive(archive)
        if verify_checksum(archive, required=False):
            matched += 1
    return f"{len(archives)} archive(s) readable, {matched} checksum(s) matched"


def verify_dump_file(path: Path) -> str:
    verify_custom_dump(path)
    if verify_checksum(path, required=False):
        return "checksum matched"
    return "no checksum recorded"


def check_artifact(kind: str, path: Path, verify: Callable[[Path], str]) -> ArtifactCheck:
    try:
        detail = verify(path)
    except (BackupVerificationError, OSError) as exc:
        return ArtifactCheck(kind=kind, path=path, ok=False, detail=str(exc))
    return ArtifactCheck(kind=kind, path=path, ok=True, detail=detail)


__all__ = [
    "CHECKSUM_SUFFIX",
    "check_artifact",
    "checksum_path",
    "ensure_non_empty_dir",
    "sha256_file",
    "verify_checksum",
    "verify_custom_dump",
    "verify_daily_snapshot",
    "verify_dump_file",
    "verify_tar_archive",
    "write_checksum",
]
