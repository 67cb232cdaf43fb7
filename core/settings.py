from __future__ import annotations

import copy
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .paths import get_default_settings_paths, get_logs_dir
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
    "update_settings",
]

LOGGER = logging.getLogger("prs_backup.settings")

SETTINGS_VERSION = 2


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "storage": {
        "hot_root": "/mnt/ssd",
        "cold_root": "/mnt/hdd",
        "nas_root": "/mnt/nas",
        "ssd_warn_pct": 85,
        "hdd_warn_pct": 80,
        "hdd_abort_pct": 85,
    },
    "database": {
        "name": "prs_production",
        "user": "prs_user",
        "host": "localhost",
        "port": 5432,
    },
    "containers": {
        "postgres": "prs-onprem-postgres-timescale",
        "redis": "prs-onprem-redis",
        "backend": "prs-onprem-backend",
    },
    "daily": {
        "archive_after_days": 7,
        "cache_save_wait_s": 10,
        "container_tmp_dir": "/tmp",
        "redis_dump_path": "/data/dump.rdb",
    },
    "weekly": {
        "tier_dump_args": {
            "ssd": [],
            "hdd": [],
        },
        "config_sources": [
            {"path": "/opt/prs/prod-workplan/02-docker-configuration", "name": "docker-config"},
            {"path": "/opt/prs/ssl", "name": "ssl"},
            {"path": "/opt/prs/.env", "name": "env"},
        ],
        "pg_restore_list": True,
        "interval_days": 7,
    },
    "runner": {
        "allow_root": False,
        "command_timeout_s": 3600,
        "docker_binary": "docker",
    },
    "logging": {
        "file": "/var/log/prs-backup.log",
    },
}


def _overlay(base: Dict[str, Any], payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursively lay *payload* over *base* (modified in place and returned).

    Nested mappings merge key by key; lists and scalars replace the default.
    """

    for key, value in payload.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _overlay(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def merge_defaults(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    return _overlay(copy.deepcopy(DEFAULT_SETTINGS), data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    try:
        version = int(settings.get("version") or 0)
    except (TypeError, ValueError):
        version = 0
    if version < 2:
        # v1 kept the text log path at the top level.
        legacy_log = settings.pop("log_file", None)
        if isinstance(legacy_log, str) and legacy_log.strip():
            settings["logging"]["file"] = legacy_log
    settings["version"] = SETTINGS_VERSION
    return settings


def _restore_default(settings: Dict[str, Any], dotted: str) -> None:
    section, _, key = dotted.partition(".")
    if not key:
        settings[section] = copy.deepcopy(DEFAULT_SETTINGS[section])
    elif key in DEFAULT_SETTINGS[section]:
        settings[section][key] = copy.deepcopy(DEFAULT_SETTINGS[section][key])


def _report_settings_issues(settings: Dict[str, Any], working_dir: Path) -> None:
    """Record unknown keys and reset wrongly typed values to their defaults."""

    unknown = SETTINGS_VALIDATOR.unknown_keys(settings)
    invalid = SETTINGS_VALIDATOR.invalid_values(settings)
    if not unknown and not invalid:
        return
    if unknown:
        LOGGER.warning("ignoring unknown settings keys: %s", ", ".join(unknown))
    for entry in invalid:
        dotted = entry.split(":", 1)[0]
        LOGGER.warning("invalid setting %s, using the default", entry)
        if dotted.split(".", 1)[0] in DEFAULT_SETTINGS:
            _restore_default(settings, dotted)
    target = get_logs_dir(working_dir) / "settings_unknown.json"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"ts": time.time(), "unknown": unknown, "invalid": invalid}, indent=2), encoding="utf-8")
    except OSError as exc:
        LOGGER.warning("could not write %s: %s", target, exc)


def _read_first(candidates: Iterable[Path]) -> Dict[str, Any]:
    for candidate in candidates:
        try:
            raw = Path(candidate).read_text(encoding="utf-8")
        except FileNotFoundError:
            continue
        except OSError as exc:
            LOGGER.warning("settings file %s unreadable: %s", candidate, exc)
            continue
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.warning("settings file %s is not valid JSON: %s", candidate, exc)
            continue
        if isinstance(loaded, dict):
            LOGGER.debug("settings loaded from %s", candidate)
            return loaded
    return {}


def load_settings(working_dir: Path, *, path: Optional[Path] = None) -> Dict[str, Any]:
    """Return settings from *path* (or the default search order) over the defaults."""

    candidates = [path] if path is not None else get_default_settings_paths(working_dir)
    settings = _apply_migrations(merge_defaults(_read_first(candidates)))
    settings.setdefault("working_dir", str(working_dir))
    _report_settings_issues(settings, working_dir)
    return settings


def save_settings(settings: Mapping[str, Any], working_dir: Path) -> None:
    data = _apply_migrations(merge_defaults(settings))
    data.setdefault("working_dir", str(working_dir))
    target = working_dir / "settings.json"
    target.parent.mkdir(parents=True, exist_ok=True)
    scratch = target.with_name(f".{target.name}.tmp")
    scratch.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    os.replace(scratch, target)


def update_settings(working_dir: Path, **sections: Any) -> None:
    save_settings(_overlay(load_settings(working_dir), sections), working_dir)
