from __future__ import annotations

import argparse
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

from qcp.run_service import EXIT_MISSING_ARGUMENTS, CopyRequest, run_copy


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self._max_level


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qcp",
        description="Copy the files of a source tree that match an inclusion list",
    )
    parser.add_argument("source", nargs="?", help="Source directory (~/ allowed)")
    parser.add_argument("destination", nargs="?", help="Destination directory (~/ allowed)")
    parser.add_argument(
        "-y",
        "--skip-confirmation",
        action="store_true",
        help="Copy without printing the plan for confirmation first",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the plan and exit")
    parser.add_argument("--config", type=Path, help="Settings file (.yaml/.yml or .json)")
    parser.add_argument("--include-file", type=Path, help="Inclusion pattern file")
    parser.add_argument("--workers", type=int, help="Number of copy workers")
    parser.add_argument("--log-file", type=Path, help="Also write log lines to this file")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _configure_logging(verbose: bool, log_file: Path | None) -> list[logging.Handler]:
    logger = logging.getLogger("qcp")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    plain = logging.Formatter("%(message)s")

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(plain)
    stdout_handler.addFilter(_MaxLevelFilter(logging.WARNING))

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(plain)
    stderr_handler.setLevel(logging.WARNING)

    handlers: list[logging.Handler] = [stdout_handler, stderr_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        handlers.append(file_handler)

    for handler in handlers:
        logger.addHandler(handler)
    return handlers


def _release_logging(handlers: list[logging.Handler]) -> None:
    logger = logging.getLogger("qcp")
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()


def confirm_on_stdin() -> bool:
    try:
        response = input('enter "y" to confirm: ')
    except EOFError:
        return False
    return response.strip() == "y"


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not args.source or not args.destination:
        print("specify src and dst path", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return EXIT_MISSING_ARGUMENTS

    handlers = _configure_logging(args.verbose, args.log_file)
    try:
        request = CopyRequest(
            source=args.source,
            destination=args.destination,
            config_path=args.config,
            include_file=args.include_file,
            workers=args.workers,
            skip_confirmation=args.skip_confirmation,
            dry_run=args.dry_run,
        )
        exit_code, _ = run_copy(request, confirm=confirm_on_stdin)
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 130
    finally:
        _release_logging(handlers)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
