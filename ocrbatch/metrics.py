"""Run metrics collection.

This module provides the accumulator the scheduler updates once per
resolved batch (page counters and memory samples) together with
per-stage timing helpers used to measure rendering, pre-processing,
recognition and output emission.
"""

from __future__ import annotations

import logging
import time
import tracemalloc
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import psutil

logger = logging.getLogger(__name__)

MEMORY_FIELDS = ("rss", "vms", "heap_used")


@dataclass(frozen=True)
class MemorySample:
    """Process memory at one point in time (bytes).

    Attributes:
        timestamp: ``time.time()`` when the sample was taken
        rss: Resident set size
        vms: Virtual memory size
        heap_used: Python heap traced by tracemalloc (0 when tracing is off)
    """

    timestamp: float
    rss: int
    vms: int
    heap_used: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp, "rss": self.rss, "vms": self.vms, "heap_used": self.heap_used}


def sample_memory() -> MemorySample:
    """Take a memory sample of the current process."""
    info = psutil.Process().memory_info()
    heap_used = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else 0
    return MemorySample(timestamp=time.time(), rss=info.rss, vms=info.vms, heap_used=heap_used)


def crossed_multiple(before: int, after: int, every: int) -> bool:
    """Check whether a counter moving from ``before`` to ``after`` passed a multiple of ``every``.

    Example:
        >>> crossed_multiple(95, 105, 100)
        True
        >>> crossed_multiple(100, 110, 100)
        False
    """
    if every <= 0 or after <= before:
        return False
    return after // every > before // every


@dataclass
class StageTiming:
    """Accumulated wall time for one stage."""

    total_time: float = 0.0
    calls: int = 0

    @property
    def avg_time(self) -> float:
        return self.total_time / self.calls if self.calls else 0.0


@dataclass
class MetricsCollector:
    """Mutable accumulator owned by the scheduler.

    Page counters and memory samples change only through
    ``record_batch``, which the scheduler calls once per batch after the
    batch reached a terminal state.

    Example:
        >>> metrics = MetricsCollector()
        >>> metrics.start(total_pages=23)
        >>> with metrics.measure("render"):
        ...     render_pages()
        >>> metrics.record_batch(successful=10, failed=0)
        0
    """

    memory_sampler: Callable[[], MemorySample] = field(default=sample_memory, repr=False)
    clock: Callable[[], float] = field(default=time.perf_counter, repr=False)

    total_pages: int = 0
    processed_pages: int = 0
    successful_pages: int = 0
    failed_pages: int = 0
    memory_samples: list[MemorySample] = field(default_factory=list)
    stage_timings: dict[str, StageTiming] = field(default_factory=dict)
    start_time: float | None = None
    end_time: float | None = None
    _start_counter: float | None = field(default=None, repr=False)
    _end_counter: float | None = field(default=None, repr=False)

    def start(self, total_pages: int = 0) -> None:
        """Mark the start of a run."""
        self.total_pages = total_pages
        self.start_time = time.time()
        self._start_counter = self.clock()

    def finish(self) -> None:
        """Mark the end of a run. Elapsed time is frozen afterwards."""
        self.end_time = time.time()
        self._end_counter = self.clock()

    @property
    def elapsed(self) -> float:
        """Seconds since ``start`` (or between ``start`` and ``finish``)."""
        if self._start_counter is None:
            return 0.0
        end = self._end_counter if self._end_counter is not None else self.clock()
        return max(end - self._start_counter, 0.0)

    def record_batch(self, successful: int, failed: int) -> int:
        """Add one resolved batch to the counters and take a memory sample.

        Args:
            successful: Successful pages in the batch
            failed: Failed pages in the batch

        Returns:
            processed_pages before this batch was added
        """
        before = self.processed_pages
        self.processed_pages += successful + failed
        self.successful_pages += successful
        self.failed_pages += failed
        self.record_memory()
        return before

    def record_memory(self, sample: MemorySample | None = None) -> MemorySample:
        """Append a memory sample (taken now unless one is given)."""
        if sample is None:
            sample = self.memory_sampler()
        self.memory_samples.append(sample)
        return sample

    def record_timing(self, stage: str, elapsed: float) -> None:
        """Record wall time for a stage.

        Args:
            stage: Stage name
            elapsed: Elapsed time in seconds
        """
        timing = self.stage_timings.setdefault(stage, StageTiming())
        timing.total_time += elapsed
        timing.calls += 1

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        """Context manager recording the wall time of the enclosed block.

        Example:
            >>> with metrics.measure("recognize"):
            ...     await pool.run()
        """
        start = self.clock()
        try:
            yield
        finally:
            elapsed = self.clock() - start
            self.record_timing(stage, elapsed)
            logger.debug("Stage '%s' took %.3fs", stage, elapsed)

    def memory_peak(self) -> dict[str, int]:
        """Per-field maximum across all samples (empty when there are none)."""
        if not self.memory_samples:
            return {}
        return {name: max(getattr(s, name) for s in self.memory_samples) for name in MEMORY_FIELDS}

    def memory_current(self) -> dict[str, int]:
        """Fields of the most recent sample (empty when there are none)."""
        if not self.memory_samples:
            return {}
        last = self.memory_samples[-1]
        return {name: getattr(last, name) for name in MEMORY_FIELDS}

    def stage_report(self) -> list[dict[str, Any]]:
        """Stage timings sorted by total time, longest first."""
        total = sum(t.total_time for t in self.stage_timings.values())
        return [
            {
                "name": stage,
                "calls": timing.calls,
                "avg_time": round(timing.avg_time, 4),
                "total_time": round(timing.total_time, 4),
                "percentage": round(timing.total_time / total * 100, 2) if total > 0 else 0.0,
            }
            for stage, timing in sorted(
                self.stage_timings.items(), key=lambda item: item[1].total_time, reverse=True
            )
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pages": self.total_pages,
            "processed_pages": self.processed_pages,
            "successful_pages": self.successful_pages,
            "failed_pages": self.failed_pages,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "elapsed": round(self.elapsed, 3),
            "memory_samples": [s.to_dict() for s in self.memory_samples],
            "stage_timings": self.stage_report(),
        }
