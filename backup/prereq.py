"""Environment checks run before any data is touched."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from core import storage

from .errors import PrerequisiteError
from .steps import StepContext


def check_not_root(ctx: StepContext) -> None:
    if ctx.section("runner").get("allow_root"):
        return
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        raise PrerequisiteError("This script should not be run as root")


def require_containers(ctx: StepContext, containers: Iterable[str]) -> None:
    if not ctx.docker.is_available():
        raise PrerequisiteError("Docker is not running")
    running = ctx.docker.running_containers()
    for container in containers:
        if container not in running:
            raise PrerequisiteError(f"Container {container} is not running")


def check_usage(ctx: StepContext, path: Path, label: str, threshold: float, *, fatal: bool = False) -> None:
    """Warn (or abort when *fatal*) if the filesystem of *path* is above *threshold* percent."""

    percent = storage.usage_percent(path)
    if percent is None:
        ctx.warn(f"{label} storage {path} is not available")
        return
    ctx.facts[f"{label.lower()}_usage_pct"] = percent
    if percent <= threshold:
        return
    if fatal:
        raise PrerequisiteError(f"{label} usage is too high: {percent}%. Cannot proceed with backup.")
    ctx.warn(f"{label} usage is high: {percent}%")


__all__ = ["check_not_root", "check_usage", "require_containers"]
