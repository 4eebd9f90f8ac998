from __future__ import annotations

import os
from pathlib import Path
import stat

from qcp.models import JobResult


COPY_CHUNK_SIZE = 1024 * 1024


def copy_file(source: Path, destination: Path, chunk_size: int = COPY_CHUNK_SIZE) -> JobResult:
    """Copy one file and give the copy the source's permission bits.

    The first failing step ends the job; its ``OSError`` becomes the result
    and the byte count is reported as zero. Both handles are closed before
    returning on every path.
    """
    try:
        with source.open("rb") as reader:
            permissions = stat.S_IMODE(os.fstat(reader.fileno()).st_mode)
            destination.parent.mkdir(parents=True, exist_ok=True)
            copied = 0
            with destination.open("wb") as writer:
                for chunk in iter(lambda: reader.read(chunk_size), b""):
                    writer.write(chunk)
                    copied += len(chunk)
            os.chmod(destination, permissions)
    except OSError as exc:
        return JobResult(error=exc, bytes_copied=0)
    return JobResult(bytes_copied=copied)
