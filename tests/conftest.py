import io
import tarfile
from pathlib import Path

import pytest

from backup.api import BackupService
from core import storage
from core.commands import CommandError, CommandResult
from core.settings import DEFAULT_SETTINGS

DEFAULT_CONTAINERS = tuple(DEFAULT_SETTINGS["containers"].values())


def write_tar_gz(path: Path, *, members=None) -> None:
    members = members or {"PG_VERSION": b"16\n", "global/pg_control": b"\x00" * 128}
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as archive:
        for name, payload in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(payload)
            archive.addfile(info, io.BytesIO(payload))


class FakeDocker:
    """Stand-in for DockerClient that fabricates the artifacts the tools would produce."""

    def __init__(self, running=None, available=True):
        self.available = available
        self.running = set(DEFAULT_CONTAINERS if running is None else running)
        self.fail = set()
        self.missing_copies = set()
        self.empty_outputs = set()
        self.scalar_value = "3"
        self.dump_bytes = b"PGDMP" + b"\x01" * 256
        self.calls = []

    def _should_fail(self, argv):
        text = " ".join(argv)
        return any(token in text for token in self.fail)

    def _failure(self, argv):
        return CommandResult(argv=["docker", *argv], returncode=1, stderr="simulated failure")

    def is_available(self):
        self.calls.append(("info", []))
        return self.available

    def running_containers(self):
        self.calls.append(("ps", []))
        return set(self.running)

    def exec(self, container, args, *, stdout_path=None, stdin_path=None, check=True):
        argv = [container, *args]
        self.calls.append(("exec", argv))
        if self._should_fail(argv):
            result = self._failure(argv)
            if check:
                raise CommandError(result.describe(), result=result)
            return result
        stdout = f"{self.scalar_value}\n" if "-t" in args else ""
        if stdout_path is not None:
            stdout_path.parent.mkdir(parents=True, exist_ok=True)
            if any(token in " ".join(argv) for token in self.empty_outputs):
                stdout_path.write_bytes(b"")
                return CommandResult(argv=["docker", "exec", *argv], returncode=0, stdout=stdout)
            stdout_path.write_text(" hypertable_name \n-----------------\n requisitions\n(1 row)\n", encoding="utf-8")
        return CommandResult(argv=["docker", "exec", *argv], returncode=0, stdout=stdout)

    def copy_from(self, container, source, dest):
        self.calls.append(("cp", [container, source, str(dest)]))
        if self._should_fail([container, source]):
            raise CommandError("docker cp failed", result=self._failure(["cp", source]))
        if source in self.missing_copies:
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        if source.endswith("/."):
            dest.mkdir(parents=True, exist_ok=True)
            write_tar_gz(dest / "base.tar.gz")
            write_tar_gz(dest / "pg_wal.tar.gz", members={"000000010000000000000001": b"\x00" * 64})
        elif source.endswith(".dump"):
            dest.write_bytes(self.dump_bytes)
        elif source.endswith(".csv"):
            dest.write_text("hypertable_name,chunk_name\nrequisitions,_hyper_1_1_chunk\n", encoding="utf-8")
        else:
            dest.write_bytes(b"REDIS0011" + b"\x00" * 32)

    def save_logs(self, container, dest):
        self.calls.append(("logs", [container, str(dest)]))
        if self._should_fail(["logs", container]):
            raise CommandError(f"docker logs {container} exited with 1")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(f"{container} started\n", encoding="utf-8")

    def remove_path(self, container, path):
        self.exec(container, ["rm", "-rf", path])


@pytest.fixture(autouse=True)
def _steady_disk_usage(monkeypatch):
    monkeypatch.setattr(storage, "usage_percent", lambda path: 42 if Path(path).exists() else None)


@pytest.fixture
def fake_docker():
    return FakeDocker()


@pytest.fixture
def backup_settings(tmp_path):
    opt = tmp_path / "opt"
    (opt / "docker-config").mkdir(parents=True)
    (opt / "docker-config" / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
    (opt / "ssl").mkdir()
    (opt / "ssl" / "cert.pem").write_text("-----BEGIN CERTIFICATE-----\n", encoding="utf-8")
    (opt / ".env").write_text("POSTGRES_USER=prs_user\n", encoding="utf-8")
    for root in ("ssd", "hdd"):
        (tmp_path / root).mkdir()
    return {
        "storage": {
            "hot_root": str(tmp_path / "ssd"),
            "cold_root": str(tmp_path / "hdd"),
            "nas_root": str(tmp_path / "nas"),
        },
        "daily": {"cache_save_wait_s": 0},
        "weekly": {
            "config_sources": [
                {"path": str(opt / "docker-config"), "name": "docker-config"},
                {"path": str(opt / "ssl"), "name": "ssl"},
                {"path": str(opt / ".env"), "name": "env"},
                {"path": str(opt / "missing"), "name": "missing"},
            ],
        },
        "runner": {"allow_root": True},
        "logging": {"file": str(tmp_path / "var-log" / "prs-backup.log")},
    }


@pytest.fixture
def service(tmp_path, backup_settings, fake_docker):
    return BackupService(
        working_dir=tmp_path / "state",
        settings=backup_settings,
        docker=fake_docker,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def make_tar_gz():
    return write_tar_gz
