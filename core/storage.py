from __future__ import annotations

import math
import os
import shutil
from pathlib import Path
from typing import Optional

__all__ = ["describe_usage", "directory_size", "format_size", "usage_percent"]

_UNITS = ("K", "M", "G", "T", "P")


def usage_percent(path: Path) -> Optional[int]:
    """Return the used-space percentage of the filesystem holding *path*.

    Rounded up the way ``df`` reports it; ``None`` when *path* is missing.
    """

    try:
        usage = shutil.disk_usage(path)
    except (FileNotFoundError, NotADirectoryError):
        return None
    available = usage.used + usage.free
    if available <= 0:
        return 0
    return int(math.ceil(usage.used * 100 / available))


def describe_usage(path: Path) -> str:
    percent = usage_percent(path)
    return "N/A" if percent is None else f"{percent}%"


def directory_size(path: Path) -> int:
    if not path.exists():
        return 0
    if path.is_file():
        return path.stat().st_size
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += (Path(root) / name).lstat().st_size
            except OSError:
                continue
    return total


def format_size(size: int) -> str:
    """Human readable size in the style of ``du -sh``."""

    value = float(size)
    if value < 1024:
        return f"{int(value)}B"
    for unit in _UNITS:
        value /= 1024.0
        if value < 1024 or unit == _UNITS[-1]:
            if value < 10:
                return f"{math.ceil(value * 10) / 10:.1f}{unit}"
            return f"{int(math.ceil(value))}{unit}"
    return f"{int(value)}{_UNITS[-1]}"  # pragma: no cover
