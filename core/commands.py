"""Thin wrappers around the external command-line tools driven by the runners."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Set

LOGGER = logging.getLogger("prs_backup.commands")

DEFAULT_TIMEOUT_S = 3600.0


class CommandError(RuntimeError):
    """Raised when an external command cannot be run or exits non-zero."""

    def __init__(self, message: str, *, result: Optional["CommandResult"] = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(slots=True)
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        detail = (self.stderr or self.stdout or "").strip().splitlines()
        tail = detail[-1] if detail else "no output"
        return f"{self.argv[0]} exited with {self.returncode}: {tail}"


def _partial_path(path: Path) -> Path:
    return path.with_name(path.name + ".part")


def run_command(
    argv: Sequence[str],
    *,
    timeout: float = DEFAULT_TIMEOUT_S,
    stdin_path: Optional[Path] = None,
    stdout_path: Optional[Path] = None,
    merge_stderr: bool = False,
) -> CommandResult:
    """Run *argv* without a shell and capture its output.

    When *stdout_path* is given the standard output is streamed to
    ``<stdout_path>.part`` instead of being captured and moved into place only
    when the command exits 0, so a failed command never leaves a truncated or
    empty file under the final name. With *merge_stderr* stderr goes there as
    well.
    """

    cmd = [str(part) for part in argv]
    LOGGER.debug("run %s", " ".join(cmd))
    partial = _partial_path(stdout_path) if stdout_path is not None else None
    try:
        with ExitStack() as stack:
            stdin = stack.enter_context(open(stdin_path, "rb")) if stdin_path else subprocess.DEVNULL
            if partial is not None:
                partial.parent.mkdir(parents=True, exist_ok=True)
                stdout = stack.enter_context(open(partial, "wb"))
            else:
                stdout = subprocess.PIPE
            stderr = subprocess.STDOUT if (merge_stderr and partial is not None) else subprocess.PIPE
            try:
                proc = subprocess.run(
                    cmd,
                    check=False,
                    stdin=stdin,
                    stdout=stdout,
                    stderr=stderr,
                    timeout=max(1.0, float(timeout)),
                )
            except FileNotFoundError as exc:
                raise CommandError(f"{cmd[0]} not found") from exc
            except subprocess.TimeoutExpired as exc:
                raise CommandError(f"{cmd[0]} timed out after {timeout:.0f}s") from exc
        if partial is not None and proc.returncode == 0:
            os.replace(partial, stdout_path)
    finally:
        if partial is not None and partial.exists():
            partial.unlink()
    return CommandResult(
        argv=cmd,
        returncode=proc.returncode,
        stdout=_decode(proc.stdout),
        stderr=_decode(proc.stderr),
    )


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


@dataclass
class DockerClient:
    """Run commands against containers through the docker CLI."""

    binary: str = "docker"
    timeout: float = DEFAULT_TIMEOUT_S
    _resolved: Optional[str] = field(default=None, init=False, repr=False)

    def _docker(self) -> str:
        if self._resolved is None:
            self._resolved = shutil.which(self.binary) or self.binary
        return self._resolved

    def _run(self, args: Sequence[str], **kwargs) -> CommandResult:
        return run_command([self._docker(), *args], timeout=kwargs.pop("timeout", self.timeout), **kwargs)

    # ------------------------------------------------------------------
    def is_available(self) -> bool:
        try:
            return self._run(["info"], timeout=30).ok
        except CommandError:
            return False

    def running_containers(self) -> Set[str]:
        result = self._run(["ps", "--format", "{{.Names}}"], timeout=30)
        if not result.ok:
            raise CommandError(result.describe(), result=result)
        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    def exec(
        self,
        container: str,
        args: Sequence[str],
        *,
        stdout_path: Optional[Path] = None,
        stdin_path: Optional[Path] = None,
        check: bool = True,
    ) -> CommandResult:
        prefix = ["exec", "-i"] if stdin_path is not None else ["exec"]
        result = self._run([*prefix, container, *args], stdout_path=stdout_path, stdin_path=stdin_path)
        if check and not result.ok:
            raise CommandError(result.describe(), result=result)
        return result

    def copy_from(self, container: str, source: str, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        result = self._run(["cp", f"{container}:{source}", str(dest)])
        if not result.ok:
            raise CommandError(result.describe(), result=result)

    def save_logs(self, container: str, dest: Path) -> None:
        result = self._run(["logs", container], stdout_path=dest, merge_stderr=True)
        if not result.ok:
            raise CommandError(f"docker logs {container} exited with {result.returncode}", result=result)

    def remove_path(self, container: str, path: str) -> None:
        self.exec(container, ["rm", "-rf", path])


__all__ = ["CommandError", "CommandResult", "DockerClient", "run_command"]
