"""Event and operator logs for backup runs."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from core.paths import get_logs_dir

LOGGER = logging.getLogger("prs_backup.backup")

EVENTS_FILE = "backup.jsonl"


class BackupLogger:
    """Write JSONL events plus the operator-facing text log for backup runs.

    Events go to ``<working_dir>/logs/backup.jsonl``. The text log mirrors what
    operators tail on the host, one line per message in the form
    ``[YYYY-mm-dd HH:MM:SS] LEVEL: message``; plain progress lines carry no
    level label.
    """

    def __init__(self, working_dir: Path, *, text_log: Optional[Path] = None) -> None:
        self._events_path = get_logs_dir(Path(working_dir)) / EVENTS_FILE
        self._events_path.parent.mkdir(parents=True, exist_ok=True)
        self._text_log = Path(text_log) if text_log else None
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._events_path

    def _emit(self, level: int, event: str, ok: bool, message: Optional[str], extra: dict) -> None:
        record = {"ts": datetime.now(timezone.utc).isoformat(), "event": event, "ok": ok}
        if message:
            record["message"] = message
        record.update(extra)
        line = json.dumps(record, sort_keys=True, default=str)
        with self._lock:
            with self._events_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        LOGGER.log(level, "%s", message or event, extra={"backup_event": event})

    def _text(self, label: Optional[str], message: str) -> None:
        if self._text_log is None:
            return
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{stamp}] {label}: {message}" if label else f"[{stamp}] {message}"
        try:
            self._text_log.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                with self._text_log.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except OSError as exc:
            # Keep running with JSONL only; the operator log is best effort.
            LOGGER.warning("text log %s not writable: %s", self._text_log, exc)
            self._text_log = None

    # ------------------------------------------------------------------
    def event(self, *, event: str, phase: str, ok: bool, **extra: Any) -> None:
        self._emit(logging.INFO if ok else logging.ERROR, event, bool(ok), None, {"phase": phase, **extra})

    def info(self, event: str, message: Optional[str] = None, **extra: Any) -> None:
        self._emit(logging.INFO, event, True, message, extra)
        if message:
            self._text(None, message)

    def success(self, event: str, message: str, **extra: Any) -> None:
        self._emit(logging.INFO, event, True, message, extra)
        self._text("SUCCESS", message)

    def warning(self, event: str, message: Optional[str] = None, **extra: Any) -> None:
        self._emit(logging.WARNING, event, False, message, extra)
        if message:
            self._text("WARNING", message)

    def error(self, event: str, message: Optional[str] = None, **extra: Any) -> None:
        self._emit(logging.ERROR, event, False, message, extra)
        if message:
            self._text("ERROR", message)


__all__ = ["BackupLogger"]
