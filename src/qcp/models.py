from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import threading
from typing import Callable


@dataclass(frozen=True, slots=True)
class JobResult:
    error: Exception | None = None
    bytes_copied: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class PlannedOperation:
    source: Path
    destination: Path
    action: Callable[[], JobResult]

    def execute(self) -> JobResult:
        return self.action()


class RunningTotal:
    """Byte counter shared by all pool workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def add(self, amount: int) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass(slots=True)
class RunSummary:
    planned: int = 0
    copied: int = 0
    failed: int = 0
    bytes_copied: int = 0
