from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .paths import get_logs_dir

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    extras: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key.startswith("_") or key in _STANDARD_ATTRS:
            continue
        try:
            json.dumps(value)
        except TypeError:
            value = str(value)
        extras[key] = value
    return extras


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields are kept as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        for key, value in _extras(record).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(working_dir: Path, *, verbose: bool = False, name: str = "prs_backup") -> logging.Logger:
    """Attach the JSONL file handler and a stderr handler to the *name* logger.

    Safe to call repeatedly: handlers are only added once per log file.
    """

    log_path = get_logs_dir(working_dir) / "prs-backup.log.jsonl"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    has_file = any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_path)
        for handler in logger.handlers
    )
    if not has_file:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(JsonLogFormatter())
        logger.addHandler(file_handler)

    console = next((handler for handler in logger.handlers if getattr(handler, "_prs_console", False)), None)
    if console is None:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        console._prs_console = True  # type: ignore[attr-defined]
        logger.addHandler(console)
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    return logger


__all__ = ["JsonLogFormatter", "configure_logging"]
