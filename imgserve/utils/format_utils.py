"""Formatting helpers for user-facing output."""

from typing import Union

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: Union[int, float], precision: int = 2) -> str:
    """
    Format a byte count with 1024-based units.

    A value is promoted to the next unit only once it exceeds 1024, so
    exactly 1024 bytes stays "1024.00 B".

    Examples:
        format_bytes(512)        -> "512.00 B"
        format_bytes(1536)       -> "1.50 KB"
        format_bytes(5 * 1024**3) -> "5.00 GB"
    """
    value = float(num_bytes)
    unit = 0
    while value > 1024 and unit < len(BYTE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.{precision}f} {BYTE_UNITS[unit]}"
