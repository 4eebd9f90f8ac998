from __future__ import annotations

from functools import partial
import logging
import os
from pathlib import Path
import queue
import threading
from typing import Callable, Iterator

from qcp.copy_job import copy_file
from qcp.models import JobResult, PlannedOperation


MatchFn = Callable[[Path, Path], bool]
ActionFactory = Callable[[Path, Path], Callable[[], JobResult]]

_PUT_TIMEOUT_SECONDS = 0.1
_DONE = object()


class TraversalError(Exception):
    """A directory under the source root could not be read."""

    def __init__(self, path: str | os.PathLike[str] | None, cause: OSError) -> None:
        super().__init__(f"cannot traverse {path}: {cause.strerror or cause}")
        self.path = path
        self.cause = cause


def copy_action(source: Path, destination: Path) -> Callable[[], JobResult]:
    return partial(copy_file, source, destination)


def destination_for(source_root: Path, destination_root: Path, source: Path) -> Path:
    return destination_root / source.relative_to(source_root)


class _Producer:
    def __init__(
        self,
        channel: queue.Queue,
        stop: threading.Event,
        source_root: Path,
        destination_root: Path,
        match_fn: MatchFn,
        follow_symlinks: bool,
        on_error: str,
        action_factory: ActionFactory,
        log: logging.Logger,
    ) -> None:
        self._channel = channel
        self._stop = stop
        self._source_root = source_root
        self._destination_root = destination_root
        self._match_fn = match_fn
        self._follow_symlinks = follow_symlinks
        self._on_error = on_error
        self._action_factory = action_factory
        self._log = log

    def _send(self, item: object) -> bool:
        # bounded put so a closed consumer (stop set) is noticed while blocked
        while not self._stop.is_set():
            try:
                self._channel.put(item, timeout=_PUT_TIMEOUT_SECONDS)
                return True
            except queue.Full:
                continue
        return False

    def _handle_walk_error(self, error: OSError) -> None:
        if self._on_error == "abort":
            raise TraversalError(error.filename, error)
        self._log.warning("skipping unreadable directory %s: %s", error.filename, error.strerror or error)

    def run(self) -> None:
        try:
            for root_str, dirs, files in os.walk(
                self._source_root,
                topdown=True,
                onerror=self._handle_walk_error,
                followlinks=self._follow_symlinks,
            ):
                dirs.sort()
                root = Path(root_str)
                if not self._follow_symlinks:
                    for dir_name in dirs:
                        if (root / dir_name).is_symlink():
                            self._log.debug("not following symlinked directory %s", root / dir_name)
                for file_name in sorted(files):
                    source = root / file_name
                    if not self._match_fn(self._source_root, source):
                        continue
                    destination = destination_for(self._source_root, self._destination_root, source)
                    operation = PlannedOperation(
                        source=source,
                        destination=destination,
                        action=self._action_factory(source, destination),
                    )
                    if not self._send(operation):
                        return
        except TraversalError as exc:
            self._send(exc)
            return
        except Exception as exc:
            self._log.debug("walk of %s failed unexpectedly", self._source_root, exc_info=True)
            self._send(exc)
            return
        self._send(_DONE)


def walk(
    source_root: Path,
    destination_root: Path,
    match_fn: MatchFn,
    *,
    follow_symlinks: bool = False,
    on_error: str = "abort",
    action_factory: ActionFactory = copy_action,
    logger: logging.Logger | None = None,
) -> Iterator[PlannedOperation]:
    """Yield a planned operation for every matching file under ``source_root``.

    Traversal runs in a producer thread that hands operations over a queue of
    capacity one, so it never gets more than one operation ahead of the
    consumer. Under the ``abort`` policy a directory that cannot be read ends
    the walk with ``TraversalError``; under ``skip`` it is logged and left out.
    Each call walks the filesystem again.
    """
    log = logger or logging.getLogger("qcp.walker")
    channel: queue.Queue = queue.Queue(maxsize=1)
    stop = threading.Event()
    producer = _Producer(
        channel=channel,
        stop=stop,
        source_root=source_root,
        destination_root=destination_root,
        match_fn=match_fn,
        follow_symlinks=follow_symlinks,
        on_error=on_error,
        action_factory=action_factory,
        log=log,
    )
    thread = threading.Thread(target=producer.run, name="qcp-walker", daemon=True)
    thread.start()

    try:
        while True:
            item = channel.get()
            if item is _DONE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item
    finally:
        stop.set()
        thread.join()
