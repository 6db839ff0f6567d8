"""Batch OCR orchestration for long multi-page documents.

A run partitions a document into page batches, renders, pre-processes and
recognizes each batch with its own engine under bounded concurrency,
contains failures at the batch and page level, and finishes with a
performance and quality report.

Example:
    >>> from ocrbatch import SchedulerConfig, create_default_scheduler
    >>>
    >>> config = SchedulerConfig(batch_size=10, max_concurrent=4, languages=("eng",))
    >>> scheduler = create_default_scheduler(config)
    >>> result = scheduler.run(Path("book.pdf").read_bytes())
    >>> result.report.summary["success_rate"]
    98.5
"""

from __future__ import annotations

from .batch import partition
from .config import RunOptions, SchedulerConfig
from .events import LoggingProgressListener
from .exceptions import (
    ConfigurationError,
    DocumentOpenError,
    InvalidConfigError,
    OCRBatchError,
)
from .factory import ComponentFactory, create_default_scheduler
from .metrics import MetricsCollector
from .report import Report, build_report, save_report
from .scheduler import BatchScheduler
from .types import Batch, PageResult, RunResult

__version__ = "0.1.0"

__all__ = [
    "Batch",
    "BatchScheduler",
    "ComponentFactory",
    "ConfigurationError",
    "DocumentOpenError",
    "InvalidConfigError",
    "LoggingProgressListener",
    "MetricsCollector",
    "OCRBatchError",
    "PageResult",
    "Report",
    "RunOptions",
    "RunResult",
    "SchedulerConfig",
    "build_report",
    "create_default_scheduler",
    "partition",
    "save_report",
]
