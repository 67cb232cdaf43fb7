"""Additive directory mirroring used for uploads and NAS copies."""
from __future__ import annotations

import os
import shutil
from pathlib import Path

from .errors import BackupError
from .types import MirrorSummary


def _needs_copy(source: Path, dest: Path) -> bool:
    if not dest.exists():
        return True
    src_stat = source.stat()
    dst_stat = dest.stat()
    if src_stat.st_size != dst_stat.st_size:
        return True
    return int(src_stat.st_mtime) != int(dst_stat.st_mtime)


def mirror_tree(source: Path, dest: Path) -> MirrorSummary:
    """Copy new or changed files from *source* into *dest*.

    Files that exist only under *dest* are left alone: the mirror only ever
    adds or refreshes, so every earlier version that was synced stays put.
    """

    if not source.is_dir():
        raise BackupError(f"mirror source {source} is not a directory")
    dest.mkdir(parents=True, exist_ok=True)
    summary = MirrorSummary()
    for root, dirs, files in os.walk(source):
        dirs.sort()
        rel_root = Path(root).relative_to(source)
        target_root = dest / rel_root
        target_root.mkdir(parents=True, exist_ok=True)
        for name in sorted(files):
            src_file = Path(root) / name
            dst_file = target_root / name
            if src_file.is_symlink() and not src_file.exists():
                continue
            if not _needs_copy(src_file, dst_file):
                summary.unchanged += 1
                continue
            shutil.copy2(src_file, dst_file)
            summary.copied.append((rel_root / name).as_posix())
            summary.bytes_copied += dst_file.stat().st_size
    return summary


def copy_into(source: Path, dest: Path) -> None:
    """Copy a file or directory tree to *dest*, refusing to overwrite."""

    if dest.exists():
        raise BackupError(f"refusing to overwrite {dest}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        shutil.copytree(source, dest)
    else:
        shutil.copy2(source, dest)


__all__ = ["copy_into", "mirror_tree"]
