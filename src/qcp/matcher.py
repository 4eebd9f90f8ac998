from __future__ import annotations

from pathlib import Path
from typing import Iterable

import pathspec

from qcp.config import DEFAULT_IGNORED_SUFFIXES, MATCH_STYLES


class PatternError(ValueError):
    """An inclusion pattern could not be compiled."""


def _relative_posix(source_root: Path, candidate: Path) -> str | None:
    try:
        return candidate.relative_to(source_root).as_posix()
    except ValueError:
        return None


def _normalize_prefix(pattern: str) -> str:
    # patterns are always anchored at the source root
    return pattern.lstrip("/")


class InclusionPredicate:
    """Allow-list matcher for paths under a source root.

    ``prefix`` style accepts a path whose root-relative POSIX form starts with
    one of the patterns verbatim, so ``Documents/`` takes the whole subtree.
    ``glob`` style evaluates the patterns with gitignore wildmatch rules:
    ``*`` stops at ``/``, ``**`` crosses it, and a pattern naming a directory
    takes everything beneath it.

    Names ending with an ignored suffix are rejected before any pattern is
    consulted. With no patterns at all, nothing matches.
    """

    def __init__(
        self,
        patterns: Iterable[str],
        ignored_suffixes: Iterable[str] = DEFAULT_IGNORED_SUFFIXES,
        style: str = "prefix",
    ) -> None:
        if style not in MATCH_STYLES:
            raise PatternError(f"Unknown match style '{style}'; expected one of: {', '.join(MATCH_STYLES)}")

        self.style = style
        self.ignored_suffixes = tuple(suffix for suffix in ignored_suffixes if suffix)
        self._spec: pathspec.PathSpec | None = None

        if style == "prefix":
            self.patterns = tuple(_normalize_prefix(pattern) for pattern in patterns)
            return

        self.patterns = tuple(patterns)
        for pattern in self.patterns:
            if pattern.startswith("!"):
                raise PatternError(f"Negated pattern '{pattern}' is not allowed in an inclusion list")
        try:
            self._spec = pathspec.GitIgnoreSpec.from_lines(self.patterns)
        except ValueError as exc:
            raise PatternError(f"Invalid glob pattern: {exc}") from exc

    def is_ignored_name(self, name: str) -> bool:
        return any(name.endswith(suffix) for suffix in self.ignored_suffixes)

    def matches(self, source_root: Path, candidate: Path) -> bool:
        if self.is_ignored_name(candidate.name):
            return False

        relative = _relative_posix(source_root, candidate)
        if relative is None or relative == ".":
            return False

        if self._spec is not None:
            return self._spec.match_file(relative)
        return any(relative.startswith(pattern) for pattern in self.patterns)

    def __call__(self, source_root: Path, candidate: Path) -> bool:
        return self.matches(source_root, candidate)
