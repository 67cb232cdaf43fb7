import pytest

from backup.errors import BackupError
from backup.report import checklist, write_report
from backup.types import RunResult, StepOutcome, StepStatus


def test_write_report_is_write_once(tmp_path):
    path = tmp_path / "reports" / "daily_backup_report_20261019_030000.txt"

    write_report(path, "first\n")
    with pytest.raises(BackupError, match="already exists"):
        write_report(path, "second\n")

    assert path.read_text(encoding="utf-8") == "first\n"


def test_checklist_marks_each_status():
    result = RunResult(run_id="20261019_030000", kind="daily", started_utc="2026-10-19T03:00:00+00:00")
    result.steps = [
        StepOutcome(name="a", title="A", status=StepStatus.OK),
        StepOutcome(name="b", title="B", status=StepStatus.WARNING, warnings=["late"]),
        StepOutcome(name="c", title="C", status=StepStatus.FAILED, error="boom"),
        StepOutcome(name="d", title="D", status=StepStatus.SKIPPED),
    ]

    lines = checklist(result, [("a", "Alpha"), ("b", "Beta"), ("c", "Gamma"), ("d", "Delta"), ("e", "Never ran")])

    assert lines == ["✓ Alpha", "! Beta", "✗ Gamma", "- Delta", "- Never ran"]


def test_daily_report_lists_warnings(service, fake_docker):
    fake_docker.fail = {"chunks"}

    result = service.run_daily(run_id="20261019_030000")

    report = result.report_path.read_text(encoding="utf-8")
    assert "Warnings and Errors:" in report
    assert "- backup_metadata: Failed to backup chunk metadata" in report
    assert "- SSD Usage: 42%" in report
    assert report.endswith("Status: SUCCESS WITH WARNINGS\n")
