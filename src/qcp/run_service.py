from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable

from qcp.config import CopySettings, expand_path, load_patterns, load_settings
from qcp.matcher import InclusionPredicate, PatternError
from qcp.models import PlannedOperation, RunSummary
from qcp.pool import Aggregator, WorkerPool
from qcp.sizes import format_size
from qcp.walker import TraversalError, walk


EXIT_SUCCESS = 0
EXIT_MISSING_ARGUMENTS = 1
EXIT_SOURCE_PATH = 2
EXIT_DESTINATION_PATH = 3
EXIT_DECLINED = 4
EXIT_PATTERNS = 5
EXIT_TRAVERSAL = 6
EXIT_INVALID_CONFIG = 7


@dataclass(slots=True)
class CopyRequest:
    source: str
    destination: str
    config_path: Path | None = None
    include_file: Path | None = None
    workers: int | None = None
    skip_confirmation: bool = False
    dry_run: bool = False


def _validate_roots(source_root: Path, destination_root: Path) -> tuple[int, str] | None:
    if not source_root.is_dir():
        return EXIT_SOURCE_PATH, f"Source directory does not exist or is not a directory: {source_root}"

    source_resolved = source_root.resolve()
    destination_resolved = destination_root.resolve()

    if source_resolved == destination_resolved:
        return EXIT_DESTINATION_PATH, f"Invalid mapping: source and destination are equal: {source_root}"

    return None


def _apply_overrides(settings: CopySettings, request: CopyRequest) -> CopySettings:
    if request.include_file is not None:
        settings.include_file = request.include_file
    if request.workers is not None:
        if request.workers < 1:
            raise ValueError("workers must be a positive integer")
        settings.workers = request.workers
    return settings


def plan_operations(
    source_root: Path,
    destination_root: Path,
    predicate: InclusionPredicate,
    settings: CopySettings,
    log: logging.Logger,
) -> list[PlannedOperation]:
    operations: list[PlannedOperation] = []
    for operation in walk(
        source_root,
        destination_root,
        predicate,
        follow_symlinks=settings.follow_symlinks,
        on_error=settings.on_traversal_error,
        logger=log.getChild("walker"),
    ):
        operations.append(operation)
        log.info("plan: %s -> %s", operation.source, operation.destination)
    return operations


def execute_operations(
    operations: list[PlannedOperation],
    pool_size: int,
    log: logging.Logger,
) -> RunSummary:
    aggregator = Aggregator(logger=log)
    log.debug("dispatching %s operation(s) to %s worker(s)", len(operations), pool_size)
    with WorkerPool(pool_size) as pool:
        for operation in operations:
            pool.dispatch(aggregator.track(operation))
        aggregator.wait()
    return aggregator.summary(planned=len(operations))


def run_copy(
    request: CopyRequest,
    confirm: Callable[[], bool] | None = None,
    logger: logging.Logger | None = None,
) -> tuple[int, RunSummary]:
    log = logger or logging.getLogger("qcp.run")

    try:
        settings = _apply_overrides(load_settings(request.config_path), request)
    except (OSError, ValueError) as exc:
        log.error("Invalid config: %s", exc)
        return EXIT_INVALID_CONFIG, RunSummary()

    try:
        source_root = expand_path(request.source)
    except (OSError, RuntimeError, ValueError) as exc:
        log.error("err expanding src path %r: %s", request.source, exc)
        return EXIT_SOURCE_PATH, RunSummary()

    try:
        destination_root = expand_path(request.destination)
    except (OSError, RuntimeError, ValueError) as exc:
        log.error("err expanding dst path %r: %s", request.destination, exc)
        return EXIT_DESTINATION_PATH, RunSummary()

    try:
        patterns = load_patterns(settings.include_file)
        predicate = InclusionPredicate(
            patterns,
            ignored_suffixes=settings.ignored_suffixes,
            style=settings.match_style,
        )
    except (OSError, PatternError, ValueError) as exc:
        log.error("err reading %s: %s", settings.include_file, exc)
        return EXIT_PATTERNS, RunSummary()

    if not patterns:
        log.warning("no inclusion patterns in %s; nothing will be copied", settings.include_file)

    invalid = _validate_roots(source_root, destination_root)
    if invalid is not None:
        exit_code, message = invalid
        log.error("%s", message)
        return exit_code, RunSummary()

    try:
        operations = plan_operations(source_root, destination_root, predicate, settings, log)
    except TraversalError as exc:
        log.error("%s", exc)
        return EXIT_TRAVERSAL, RunSummary()

    if request.dry_run:
        log.info("dry run: %s file(s) planned from %s to %s", len(operations), source_root, destination_root)
        return EXIT_SUCCESS, RunSummary(planned=len(operations))

    if not request.skip_confirmation and not (confirm is not None and confirm()):
        log.error("aborted by user")
        return EXIT_DECLINED, RunSummary(planned=len(operations))

    summary = execute_operations(operations, settings.pool_size(), log)
    log.info(
        "copied %s from %s to %s",
        format_size(summary.bytes_copied),
        source_root,
        destination_root,
    )
    return EXIT_SUCCESS, summary
