"""Resource management utilities with context managers.

This module provides context managers for the resources a run holds:
the opened PDF, the per-batch temporary workspace, and the memory of
intermediate page images.
"""

from __future__ import annotations

import gc
import logging
import shutil
import tempfile
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import fitz  # type: ignore[import-untyped]

from .exceptions import DocumentOpenError

if TYPE_CHECKING:
    from .types import Batch

logger = logging.getLogger(__name__)


# ==================== PyMuPDF Document Context Manager ====================


@contextmanager
def open_pdf_stream(data: bytes) -> Iterator[Any]:
    """Context manager for a PyMuPDF document opened from memory.

    Args:
        data: Raw PDF bytes

    Yields:
        PyMuPDF document object (fitz.Document)

    Raises:
        DocumentOpenError: If the bytes are empty or not a readable PDF

    Example:
        >>> with open_pdf_stream(pdf_bytes) as doc:
        ...     print(f"Pages: {doc.page_count}")
    """
    if not data:
        raise DocumentOpenError("Document is empty")

    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:  # PyMuPDF raises several unrelated types for bad input
        raise DocumentOpenError(f"Failed to open PDF: {e}") from e

    try:
        logger.debug("Opened PDF stream (pages: %d)", doc.page_count)
        yield doc
    finally:
        doc.close()
        logger.debug("Closed PDF stream")


# ==================== Batch Workspace Context Manager ====================


@contextmanager
def batch_workspace(
    root: Path,
    batch: Batch,
    release: Callable[[Path], None] | None = None,
) -> Iterator[Path]:
    """Create an isolated temporary directory for one batch.

    Every batch gets its own directory under ``root``, so a batch cleaning
    up its files can never remove files of a batch running next to it.

    Args:
        root: Parent directory for all workspaces
        batch: Batch owning the workspace
        release: Called with the workspace path on exit before the
            directory itself is removed (e.g. ``PageSource.release``)

    Yields:
        Path to the empty workspace directory

    Example:
        >>> with batch_workspace(Path(".tmp"), batch, source.release) as workspace:
        ...     pages = source.render(batch.start_page, batch.end_page, workspace)
    """
    root.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix=f"batch_{batch.batch_number:04d}_", dir=root))
    logger.debug("Created workspace for %s: %s", batch.label, workspace)

    try:
        yield workspace
    finally:
        if release is not None:
            try:
                release(workspace)
            except Exception as e:  # noqa: BLE001 - cleanup must not mask the batch outcome
                logger.warning("Failed to release workspace %s: %s", workspace, e)
        shutil.rmtree(workspace, ignore_errors=True)
        logger.debug("Removed workspace %s", workspace)


# ==================== Image Memory Context Manager ====================


@contextmanager
def managed_image_processing() -> Iterator[None]:
    """Run garbage collection after a block that creates many page images.

    Example:
        >>> with managed_image_processing():
        ...     pages = [transform.apply(p) for p in pages]
    """
    try:
        yield
    finally:
        gc.collect()
