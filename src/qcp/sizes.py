from __future__ import annotations


_UNITS = ["KB", "MB", "GB", "TB", "PB"]


def format_size(num_bytes: int) -> str:
    """Format a byte count with binary units, e.g. ``1536`` -> ``1.5 KB``."""
    if num_bytes < 1024:
        return f"{num_bytes} B"
    value = float(num_bytes)
    unit = _UNITS[0]
    for unit in _UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"
