"""Page range partitioning."""

from __future__ import annotations

import math

from ocrbatch.exceptions import InvalidConfigError
from ocrbatch.types import Batch


def partition(total_pages: int, batch_size: int) -> list[Batch]:
    """Split pages ``1..total_pages`` into contiguous batches.

    Batch *k* (1-indexed) covers ``[(k-1)*batch_size+1, min(k*batch_size, total_pages)]``.
    Only the last batch may be shorter than ``batch_size``.

    Args:
        total_pages: Number of pages in the document
        batch_size: Maximum pages per batch

    Returns:
        Batches in ascending page order

    Raises:
        InvalidConfigError: If either argument is not a positive integer

    Example:
        >>> [(b.start_page, b.end_page) for b in partition(23, 10)]
        [(1, 10), (11, 20), (21, 23)]
    """
    if batch_size <= 0:
        raise InvalidConfigError(f"batch_size must be positive, got {batch_size}")
    if total_pages <= 0:
        raise InvalidConfigError(f"total_pages must be positive, got {total_pages}")

    batch_count = math.ceil(total_pages / batch_size)
    return [
        Batch(
            batch_number=k,
            start_page=(k - 1) * batch_size + 1,
            end_page=min(k * batch_size, total_pages),
        )
        for k in range(1, batch_count + 1)
    ]
