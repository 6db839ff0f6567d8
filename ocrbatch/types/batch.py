"""Batch and page data types.

A run moves every page through these types:

    Batch        contiguous page range processed as one failure-containment unit
    PageImage    rendered page image handed from the page source to the engine
    Recognition  raw engine output for one image
    PageResult   final per-page outcome, exactly one per page number
    BatchOutcome per-batch result collected by the scheduler
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import numpy as np


class BatchState(str, Enum):
    """Lifecycle of a batch inside the scheduler."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CONTAINED_FAILURE = "contained_failure"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.COMPLETED, BatchState.CONTAINED_FAILURE)


@dataclass(frozen=True)
class Batch:
    """Inclusive page range ``[start_page, end_page]`` (1-indexed).

    Attributes:
        batch_number: Position of the batch in the partition (1-indexed)
        start_page: First page of the batch
        end_page: Last page of the batch
    """

    batch_number: int
    start_page: int
    end_page: int

    @property
    def page_count(self) -> int:
        """Number of pages covered by this batch."""
        return self.end_page - self.start_page + 1

    @property
    def page_numbers(self) -> range:
        """Page numbers covered by this batch, ascending."""
        return range(self.start_page, self.end_page + 1)

    @property
    def label(self) -> str:
        return f"batch {self.batch_number} (pages {self.start_page}-{self.end_page})"

    def to_dict(self) -> dict[str, int]:
        return {
            "batch_number": self.batch_number,
            "start_page": self.start_page,
            "end_page": self.end_page,
            "page_count": self.page_count,
        }


@dataclass
class PageImage:
    """A rendered page.

    Attributes:
        page_number: Page number (1-indexed)
        image: Page image as numpy array (H, W, C) or (H, W)
        path: Location of the rendered file inside the batch workspace, if any
    """

    page_number: int
    image: np.ndarray
    path: Path | None = None
    transform_skipped: bool = False


@dataclass
class Recognition:
    """Raw output of one recognizer call.

    Attributes:
        text: Recognized text
        confidence_per_unit: Confidence per recognized unit (word), 0-100 scale
        processing_time_ms: Time spent inside the engine
    """

    text: str
    confidence_per_unit: list[float] = field(default_factory=list)
    processing_time_ms: float = 0.0

    @property
    def average_confidence(self) -> float:
        """Mean of the positive unit confidences (0.0 when there are none)."""
        return average_confidence(self.confidence_per_unit)


def average_confidence(confidences: list[float] | tuple[float, ...]) -> float:
    """Average the positive values of a confidence list.

    Engines report ``-1`` or ``0`` for units they could not score; those are
    excluded so they do not drag the page average down.
    """
    valid = [c for c in confidences if c > 0]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


@dataclass
class PageResult:
    """Outcome for a single page.

    Exactly one PageResult exists per page number after a completed run.

    Attributes:
        page_number: Page number (1-indexed)
        success: Whether text was recognized
        text: Recognized text (successful pages only)
        confidence: Average unit confidence, 0-100 scale
        processing_time_ms: Engine time for this page
        error: Failure reason (failed pages only)
        transform_skipped: Pre-processing failed and the original image was used
    """

    page_number: int
    success: bool
    text: str | None = None
    confidence: float | None = None
    processing_time_ms: float | None = None
    error: str | None = None
    transform_skipped: bool = False

    @classmethod
    def failed(cls, page_number: int, error: str) -> PageResult:
        return cls(page_number=page_number, success=False, error=error)

    @classmethod
    def from_recognition(cls, page: PageImage, recognition: Recognition) -> PageResult:
        return cls(
            page_number=page.page_number,
            success=True,
            text=recognition.text,
            confidence=recognition.average_confidence,
            processing_time_ms=recognition.processing_time_ms,
            transform_skipped=page.transform_skipped,
        )

    @property
    def character_count(self) -> int:
        return len(self.text) if self.text else 0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"page_number": self.page_number, "success": self.success}
        if self.success:
            data.update(
                {
                    "text": self.text,
                    "confidence": self.confidence,
                    "processing_time_ms": self.processing_time_ms,
                }
            )
            if self.transform_skipped:
                data["transform_skipped"] = True
        else:
            data["error"] = self.error
        return data


@dataclass
class BatchOutcome:
    """Result of one batch after it reached a terminal state."""

    batch: Batch
    state: BatchState
    page_results: list[PageResult]
    error: str | None = None
    attempts: int = 1

    @property
    def successful_pages(self) -> int:
        return sum(1 for r in self.page_results if r.success)

    @property
    def failed_pages(self) -> int:
        return len(self.page_results) - self.successful_pages
