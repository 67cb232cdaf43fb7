from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

_NUMBER = (int, float)
_PERCENT = ("percent", _NUMBER)
_POSITIVE = ("positive", _NUMBER)
_ARG_MAP = ("arg_map", dict)

# section -> key -> expected type (or (constraint, type)); ANY_KEYS accepts free-form names.
ANY_KEYS = "*"

_SCHEMA: Dict[str, Any] = {
    "version": int,
    "working_dir": str,
    "storage": {
        "hot_root": str,
        "cold_root": str,
        "nas_root": str,
        "ssd_warn_pct": _PERCENT,
        "hdd_warn_pct": _PERCENT,
        "hdd_abort_pct": _PERCENT,
    },
    "database": {"name": str, "user": str, "host": str, "port": int},
    "containers": ANY_KEYS,
    "daily": {
        "archive_after_days": _POSITIVE,
        "cache_save_wait_s": _NUMBER,
        "container_tmp_dir": str,
        "redis_dump_path": str,
    },
    "weekly": {
        "tier_dump_args": _ARG_MAP,
        "config_sources": list,
        "pg_restore_list": bool,
        "interval_days": _POSITIVE,
    },
    "runner": {"allow_root": bool, "command_timeout_s": _POSITIVE, "docker_binary": str},
    "logging": {"file": str},
}


def _check_value(rule: Any, value: Any) -> Optional[str]:
    constraint = None
    if isinstance(rule, tuple) and isinstance(rule[0], str):
        constraint, rule = rule
    expected = "number" if rule == _NUMBER else rule.__name__
    if isinstance(value, bool) and rule is not bool:
        return f"expected {expected}"
    if not isinstance(value, rule):
        return f"expected {expected}"
    if constraint == "percent" and not 0 <= value <= 100:
        return "must be between 0 and 100"
    if constraint == "positive" and value <= 0:
        return "must be greater than 0"
    if constraint == "arg_map":
        for key, args in value.items():
            if isinstance(args, str):
                continue
            if not isinstance(args, list) or not all(isinstance(arg, str) for arg in args):
                return f"{key} must be a string or a list of strings"
    return None


@dataclass(slots=True)
class SettingsValidator:
    schema: Mapping[str, Any]

    def _walk(self, payload: Mapping[str, Any]) -> Iterator[Tuple[str, Optional[str]]]:
        """Yield ``(dotted_key, problem)``; ``problem`` is None for unknown keys."""

        for section, value in payload.items():
            if section not in self.schema:
                yield section, None
                continue
            rule = self.schema[section]
            if rule == ANY_KEYS:
                continue
            if not isinstance(rule, dict):
                problem = _check_value(rule, value)
                if problem:
                    yield section, problem
                continue
            if not isinstance(value, Mapping):
                yield section, "expected an object"
                continue
            for key, item in value.items():
                dotted = f"{section}.{key}"
                if key not in rule:
                    yield dotted, None
                    continue
                problem = _check_value(rule[key], item)
                if problem:
                    yield dotted, problem

    def unknown_keys(self, payload: Mapping[str, Any]) -> List[str]:
        return sorted(key for key, problem in self._walk(payload) if problem is None)

    def invalid_values(self, payload: Mapping[str, Any]) -> List[str]:
        return sorted(f"{key}: {problem}" for key, problem in self._walk(payload) if problem is not None)


SETTINGS_VALIDATOR = SettingsValidator(_SCHEMA)

__all__ = ["ANY_KEYS", "SETTINGS_VALIDATOR", "SettingsValidator"]
