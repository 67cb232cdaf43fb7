from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from core.logging_utils import configure_logging
from core.paths import ensure_working_dir_structure, resolve_working_dir
from core.settings import load_settings

from .api import BackupService
from .errors import BackupAborted, BackupError
from .types import RunResult


def _result_payload(result: RunResult) -> dict:
    return {
        "id": result.run_id,
        "kind": result.kind,
        "status": result.status.value,
        "warnings": result.warning_count,
        "size_bytes": result.size_bytes,
        "failed_step": result.failed_step,
        "report_path": str(result.report_path) if result.report_path else None,
        "steps": [
            {
                "name": outcome.name,
                "status": outcome.status.value,
                "warnings": outcome.warnings,
                "error": outcome.error,
                "duration_ms": outcome.duration_ms,
            }
            for outcome in result.steps
        ],
    }


def format_result(result: RunResult) -> str:
    lines = [f"{result.kind} backup {result.run_id}: {result.status.label}"]
    for outcome in result.steps:
        line = f" - {outcome.status.value:<8} {outcome.name}"
        if outcome.error:
            line += f" ({outcome.error})"
        lines.append(line)
        for warning in outcome.warnings:
            lines.append(f"     warning: {warning}")
    if result.report_path:
        lines.append(f"report: {result.report_path}")
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prs-backup", description="PRS on-premises backup runner")
    parser.add_argument("--working-dir", type=Path, default=None, help="Override state directory")
    parser.add_argument("--settings", type=Path, default=None, help="Read settings from this JSON file")
    parser.add_argument("--json", action="store_true", help="Print machine readable output")
    parser.add_argument("--verbose", action="store_true", help="Echo debug logging to stderr")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("daily", help="Run the daily backup")
    sub.add_parser("weekly", help="Run the weekly full backup")
    sub.add_parser("archive", help="Relocate aged daily artifacts to the archive tier")
    runs = sub.add_parser("runs", help="List recorded runs")
    runs.add_argument("--kind", choices=("daily", "weekly"), default=None)
    runs.add_argument("--limit", type=int, default=20)
    verify = sub.add_parser("verify", help="Re-verify recent backups and their checksums")
    verify.add_argument("--kind", choices=("daily", "weekly"), default=None)
    verify.add_argument("--days", type=float, default=7.0, help="Check backups written in the last N days")
    report = sub.add_parser("report", help="Print the report of a run")
    report.add_argument("run_id")
    report.add_argument("--kind", choices=("daily", "weekly"), default=None)
    return parser


def cli(argv: Optional[list[str]] = None, *, service: Optional[BackupService] = None) -> int:
    args = _build_parser().parse_args(argv)
    if service is None:
        working_dir = args.working_dir or resolve_working_dir()
        ensure_working_dir_structure(working_dir)
        configure_logging(working_dir, verbose=args.verbose)
        settings = load_settings(working_dir, path=args.settings)
        service = BackupService(working_dir=working_dir, settings=settings)

    if args.command in ("daily", "weekly"):
        try:
            result = service.run(args.command)
            code = 0
        except BackupAborted as exc:
            if exc.result is None:
                raise
            result = exc.result
            code = 1
        except BackupError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(json.dumps(_result_payload(result), indent=2) if args.json else format_result(result))
        return code

    if args.command == "archive":
        try:
            summary = service.archive_now()
        except (OSError, BackupError) as exc:
            print(f"archive failed: {exc}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps({"moved": summary.moved, "kept": summary.kept}, indent=2))
        else:
            print(f"moved={len(summary.moved)} kept={len(summary.kept)}")
            for entry in summary.moved:
                print(f" - {entry['source']} -> {entry['dest']}")
        return 0

    if args.command == "runs":
        runs = service.list_runs(kind=args.kind, limit=args.limit)
        if args.json:
            print(json.dumps([asdict(item) for item in runs], indent=2))
        else:
            for item in runs:
                print(f"{item.id} {item.kind:<6} {item.status:<8} warnings={item.warnings} report={item.report_path or '-'}")
        return 0

    if args.command == "verify":
        checks = service.verify_backups(kind=args.kind, days=args.days)
        failed = [check for check in checks if not check.ok]
        if args.json:
            print(json.dumps([{**asdict(check), "path": str(check.path)} for check in checks], indent=2))
        else:
            for check in checks:
                label = "VERIFIED" if check.ok else "FAILED"
                print(f"{label:<8} {check.path} ({check.detail})")
            print(f"verified={len(checks) - len(failed)} failed={len(failed)}")
        return 1 if failed else 0

    try:
        print(service.read_report(args.run_id, kind=args.kind), end="")
    except BackupError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(cli())
