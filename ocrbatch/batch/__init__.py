"""Batch partitioning and bounded-concurrency execution.

Components:
- partition: Split a page count into contiguous batches
- run_bounded: Semaphore-bounded task runner (one task per batch)
- run_workers: Fixed worker pool over a shared asyncio.Queue (one item per page)
"""

from __future__ import annotations

from .partition import partition
from .queue import run_bounded, run_workers

__all__ = ["partition", "run_bounded", "run_workers"]
