"""Database and cache operations executed inside their containers."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence

from core.commands import CommandError, DockerClient

LOGGER = logging.getLogger("prs_backup.services")

WarnFn = Callable[[str], None]


def _default_warn(message: str) -> None:
    LOGGER.warning("%s", message)


class PostgresTarget:
    """TimescaleDB/PostgreSQL tooling reached through ``docker exec``."""

    def __init__(
        self,
        docker: DockerClient,
        settings: Mapping[str, Any],
        *,
        warn: Optional[WarnFn] = None,
    ) -> None:
        database = settings.get("database") or {}
        self._docker = docker
        self.container = str((settings.get("containers") or {}).get("postgres"))
        self.name = str(database.get("name"))
        self.user = str(database.get("user"))
        self.host = str(database.get("host") or "localhost")
        self.port = str(database.get("port") or 5432)
        self._tmp_dir = str((settings.get("daily") or {}).get("container_tmp_dir") or "/tmp").rstrip("/")
        self._warn = warn or _default_warn

    def _remote(self, name: str) -> str:
        return f"{self._tmp_dir}/{name}"

    def _psql(self, *args: str) -> list[str]:
        return ["psql", "-U", self.user, "-d", self.name, *args]

    def _cleanup(self, remote: str) -> None:
        try:
            self._docker.remove_path(self.container, remote)
        except CommandError as exc:
            self._warn(f"Could not remove {remote} from {self.container}: {exc}")

    # ------------------------------------------------------------------
    def base_backup(self, run_id: str, dest_dir: Path) -> None:
        """Run ``pg_basebackup`` as gzip tarballs and copy them to *dest_dir*."""

        remote = self._remote(f"backup_{run_id}")
        self._docker.exec(
            self.container,
            [
                "pg_basebackup",
                "-h", self.host,
                "-p", self.port,
                "-U", self.user,
                "-D", remote,
                "-Ft", "-z", "-P",
                "--no-password",
            ],
        )
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            self._docker.copy_from(self.container, f"{remote}/.", dest_dir)
        finally:
            self._cleanup(remote)

    def export_view_csv(self, view: str, run_id: str, dest: Path) -> None:
        remote = self._remote(f"{view}_{run_id}.csv")
        query = f"COPY (SELECT * FROM timescaledb_information.{view}) TO '{remote}' CSV HEADER;"
        self._docker.exec(self.container, self._psql("-c", query))
        try:
            self._docker.copy_from(self.container, remote, dest)
        finally:
            self._cleanup(remote)

    def query_to_file(self, query: str, dest: Path) -> None:
        self._docker.exec(self.container, self._psql("-c", query), stdout_path=dest)

    def scalar(self, query: str) -> Optional[str]:
        try:
            result = self._docker.exec(self.container, self._psql("-t", "-A", "-c", query))
        except CommandError:
            return None
        value = result.stdout.strip()
        return value or None

    def dump(self, run_id: str, filename: str, dest: Path, *, extra_args: Sequence[str] = ()) -> None:
        """Custom-format ``pg_dump`` at maximum compression, copied to *dest*."""

        remote = self._remote(filename)
        self._docker.exec(
            self.container,
            [
                "pg_dump",
                "-h", self.host,
                "-p", self.port,
                "-U", self.user,
                "-d", self.name,
                "-Fc", "-Z", "9",
                *extra_args,
                f"--file={remote}",
            ],
        )
        try:
            self._docker.copy_from(self.container, remote, dest)
        finally:
            self._cleanup(remote)

    def restore_list(self, dump_path: Path) -> None:
        """Ask ``pg_restore`` to read the table of contents of a host-side dump."""

        self._docker.exec(self.container, ["pg_restore", "--list"], stdin_path=dump_path)


class CacheTarget:
    """Redis persistence triggered through ``redis-cli``."""

    def __init__(self, docker: DockerClient, settings: Mapping[str, Any]) -> None:
        self._docker = docker
        self.container = str((settings.get("containers") or {}).get("redis"))
        self._dump_path = str((settings.get("daily") or {}).get("redis_dump_path") or "/data/dump.rdb")

    def trigger_save(self) -> None:
        self._docker.exec(self.container, ["redis-cli", "BGSAVE"])

    def fetch_dump(self, dest: Path) -> None:
        self._docker.copy_from(self.container, self._dump_path, dest)


__all__ = ["CacheTarget", "PostgresTarget"]
