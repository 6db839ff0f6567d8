"""Miscellaneous helpers: timestamps and unit formatting."""

from __future__ import annotations

from datetime import UTC, datetime

from .constants import BYTES_PER_MB


def tz_now() -> datetime:
    """Return the current time in UTC."""
    return datetime.now(UTC)


def from_timestamp(timestamp: float) -> datetime:
    """Convert a ``time.time()`` value to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, UTC)


def bytes_to_mb(value: float) -> float:
    """Convert bytes to megabytes, rounded to two decimals."""
    return round(value / BYTES_PER_MB, 2)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Divide, returning 0.0 when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator
