"""Collaborator interfaces consumed by the batch scheduler.

This module defines Protocol interfaces for the pieces the scheduler
delegates to:
- PageSource: Opens a document and renders page ranges to images
- ImageTransform: Enhances a single page image before recognition
- Recognizer: Stateful text recognition engine
- OutputSink: Materializes page results into output artifacts
- ProgressListener: Receives typed progress events
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import numpy as np

    from ocrbatch.events import ProgressEvent

    from .batch import Batch, PageImage, PageResult, Recognition
    from .document import DocumentInfo, DocumentMetadata, OutputArtifact


@runtime_checkable
class PageSource(Protocol):
    """Document rendering interface.

    A page source is opened once per run; ``render`` may then be called
    concurrently from several batches, each with its own workspace.

    Example:
        >>> source = PyMuPDFPageSource(dpi=300)
        >>> info = source.open(pdf_bytes)
        >>> pages = source.render(1, 10, Path(".tmp/batch_0001"))
        >>> source.release(Path(".tmp/batch_0001"))
        >>> source.close()
    """

    def open(self, data: bytes) -> DocumentInfo:
        """Open a document and report its page count and metadata.

        Raises:
            DocumentOpenError: If the document cannot be opened
        """
        ...

    def render(self, start_page: int, end_page: int, workspace: Path) -> list[PageImage]:
        """Render the inclusive page range into ``workspace``.

        Returns:
            Rendered pages in ascending page order. Pages that could not be
            rendered may be missing from the list.
        """
        ...

    def release(self, workspace: Path) -> None:
        """Delete everything ``render`` wrote into ``workspace``."""
        ...

    def close(self) -> None:
        """Release the opened document."""
        ...


@runtime_checkable
class ImageTransform(Protocol):
    """Image enhancement interface. Must not mutate its input."""

    def apply(self, image: np.ndarray) -> np.ndarray:
        """Return an enhanced copy of ``image``."""
        ...


@runtime_checkable
class Recognizer(Protocol):
    """Text recognition engine.

    ``initialize`` and ``terminate`` are idempotent: calling either one on
    an engine that is already in that state is a no-op.
    ``recognize`` may be called from several worker threads at once.
    """

    name: str

    def initialize(self) -> None:
        ...

    def recognize(self, image: np.ndarray) -> Recognition:
        """Recognize text in one page image.

        Raises:
            RecognitionError: If the page cannot be recognized
        """
        ...

    def terminate(self) -> None:
        ...


@runtime_checkable
class OutputSink(Protocol):
    """Output materialization interface.

    Called once per batch with that batch's results (``batch`` set) and
    once at the end of the run with all results sorted by page number
    (``batch`` is None).
    """

    def emit(
        self,
        page_results: Sequence[PageResult],
        metadata: DocumentMetadata,
        batch: Batch | None = None,
    ) -> Mapping[str, OutputArtifact]:
        """Materialize results and return artifacts keyed by format name."""
        ...


@runtime_checkable
class ProgressListener(Protocol):
    """Observer for scheduler progress events."""

    def on_event(self, event: ProgressEvent) -> None:
        ...
