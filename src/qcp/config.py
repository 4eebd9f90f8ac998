from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import json
import yaml


DEFAULT_INCLUDE_FILE = Path("/etc/qcpinclude")

DEFAULT_IGNORED_SUFFIXES = [
    ".DS_Store",
]

MATCH_STYLES = ("prefix", "glob")
TRAVERSAL_ERROR_POLICIES = ("abort", "skip")


@dataclass(slots=True)
class CopySettings:
    include_file: Path = DEFAULT_INCLUDE_FILE
    match_style: str = "prefix"
    ignored_suffixes: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_SUFFIXES))
    workers: int | None = None
    follow_symlinks: bool = False
    on_traversal_error: str = "abort"

    def pool_size(self) -> int:
        if self.workers is not None:
            return self.workers
        return os.cpu_count() or 1


def expand_path(value: str) -> Path:
    """Resolve a command line path, expanding a leading ``~`` to the home directory."""
    if value == "~" or value.startswith("~/"):
        return Path.home() / value[2:]
    return Path(os.path.abspath(value))


def _as_path(value: Any, field_name: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string path")
    return expand_path(value.strip())


def _as_bool(value: Any, field_name: str, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field_name} must be a boolean")


def _as_choice(value: Any, field_name: str, choices: tuple[str, ...], default: str) -> str:
    if value is None:
        return default
    if value not in choices:
        raise ValueError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def _as_workers(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{field_name} must be a positive integer")
    return value


def _as_list_of_strings(value: Any, field_name: str, default: list[str] | None = None) -> list[str]:
    if value is None:
        return list(default or [])
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ValueError(f"{field_name} must be a list of strings")
    return [item for item in value if item.strip()]


def _load_raw_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ValueError(f"Config file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    text = config_path.read_text(encoding="utf-8")
    if suffix in {".yml", ".yaml"}:
        loaded = yaml.safe_load(text)
    elif suffix == ".json":
        loaded = json.loads(text)
    else:
        raise ValueError("Config file must be .yaml/.yml or .json")

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError("Config root must be an object")
    return loaded


def load_settings(config_path: Path | None) -> CopySettings:
    if config_path is None:
        return CopySettings()

    raw = _load_raw_config(config_path)
    raw_include = raw.get("includeFile")
    include_file = _as_path(raw_include, "includeFile") if raw_include is not None else DEFAULT_INCLUDE_FILE

    return CopySettings(
        include_file=include_file,
        match_style=_as_choice(raw.get("matchStyle"), "matchStyle", MATCH_STYLES, default="prefix"),
        ignored_suffixes=_as_list_of_strings(
            raw.get("ignoredSuffixes"), "ignoredSuffixes", default=DEFAULT_IGNORED_SUFFIXES
        ),
        workers=_as_workers(raw.get("workers"), "workers"),
        follow_symlinks=_as_bool(raw.get("followSymlinks"), "followSymlinks", default=False),
        on_traversal_error=_as_choice(
            raw.get("onTraversalError"),
            "onTraversalError",
            TRAVERSAL_ERROR_POLICIES,
            default="abort",
        ),
    )


def load_patterns(include_file: Path) -> list[str]:
    """Read inclusion patterns, one per line; blank lines and ``#`` comments are skipped."""
    patterns: list[str] = []
    with include_file.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            patterns.append(stripped)
    return patterns
