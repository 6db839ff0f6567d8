"""Typed progress events and listeners.

The scheduler never logs progress itself; it publishes events to the
listeners it was given. ``LoggingProgressListener`` is the default and
turns events into log lines.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .misc import bytes_to_mb

if TYPE_CHECKING:
    from .types import Batch, BatchState, DocumentMetadata, ProgressListener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """Base class for all progress events."""


@dataclass(frozen=True)
class RunStarted(ProgressEvent):
    total_pages: int
    batch_count: int
    batch_size: int
    metadata: DocumentMetadata


@dataclass(frozen=True)
class BatchStarted(ProgressEvent):
    batch: Batch
    attempt: int = 1


@dataclass(frozen=True)
class BatchCompleted(ProgressEvent):
    """A batch reached a terminal state (completed or contained failure)."""

    batch: Batch
    state: BatchState
    successful_pages: int
    failed_pages: int
    error: str | None = None


@dataclass(frozen=True)
class ThresholdCrossed(ProgressEvent):
    """The processed-page counter passed a multiple of the reinitialize threshold."""

    processed_pages: int
    threshold: int
    batch: Batch
    engine_recycled: bool


@dataclass(frozen=True)
class StatusUpdate(ProgressEvent):
    processed_pages: int
    total_pages: int
    success_rate: float
    pages_per_second: float
    eta_seconds: float
    rss_bytes: int


@dataclass(frozen=True)
class RunCompleted(ProgressEvent):
    total_pages: int
    successful_pages: int
    failed_pages: int
    elapsed: float


class LoggingProgressListener:
    """Progress listener that writes each event to the log."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def on_event(self, event: ProgressEvent) -> None:
        if isinstance(event, RunStarted):
            self.log.info(
                "Starting run: title=%s, %d pages (%s), %d batches of %d pages",
                event.metadata.title or "unknown",
                event.total_pages,
                "image-only" if event.metadata.is_image_only else "text layer",
                event.batch_count,
                event.batch_size,
            )
        elif isinstance(event, BatchStarted):
            if event.attempt > 1:
                self.log.info("Retrying %s (attempt %d)", event.batch.label, event.attempt)
            else:
                self.log.info("Processing %s", event.batch.label)
        elif isinstance(event, BatchCompleted):
            if event.error:
                self.log.error(
                    "%s failed as a unit: %s (%d pages marked failed)",
                    event.batch.label,
                    event.error,
                    event.failed_pages,
                )
            else:
                self.log.info(
                    "%s done: %d succeeded, %d failed",
                    event.batch.label,
                    event.successful_pages,
                    event.failed_pages,
                )
        elif isinstance(event, ThresholdCrossed):
            self.log.info(
                "Processed %d pages (threshold %d): engine %s",
                event.processed_pages,
                event.threshold,
                "recycled" if event.engine_recycled else "not recycled (no active engine)",
            )
        elif isinstance(event, StatusUpdate):
            self.log.info(
                "Status: %d/%d pages, success rate %.1f%%, %.2f pages/s, ~%ds remaining, RSS %.2f MB",
                event.processed_pages,
                event.total_pages,
                event.success_rate,
                event.pages_per_second,
                int(event.eta_seconds),
                bytes_to_mb(event.rss_bytes),
            )
        elif isinstance(event, RunCompleted):
            self.log.info(
                "Run finished in %.2fs: %d/%d pages succeeded, %d failed",
                event.elapsed,
                event.successful_pages,
                event.total_pages,
                event.failed_pages,
            )


class EventDispatcher:
    """Fans events out to several listeners.

    A listener that raises is logged and skipped; progress reporting
    never changes the outcome of a run.
    """

    def __init__(self, listeners: Iterable[ProgressListener] = ()):
        self.listeners = list(listeners)

    def publish(self, event: ProgressEvent) -> None:
        for listener in self.listeners:
            try:
                listener.on_event(event)
            except Exception:  # noqa: BLE001 - listeners must not break the run
                logger.warning(
                    "Progress listener %r failed on %s", listener, type(event).__name__, exc_info=True
                )
