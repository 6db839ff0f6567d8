"""PDF page source backed by PyMuPDF."""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import fitz  # type: ignore[import-untyped]
import numpy as np

from ...constants import DEFAULT_DPI, IMAGE_ONLY_RATIO, IMAGE_ONLY_SAMPLE_PAGES, PDF_BASE_DPI
from ...exceptions import DocumentOpenError, RenderError
from ...resources import open_pdf_stream
from ...types import DocumentInfo, DocumentMetadata, PageImage

logger = logging.getLogger(__name__)

PAGE_FILE_PATTERN = "page_*.png"


def is_image_only(doc: Any, sample_pages: int = IMAGE_ONLY_SAMPLE_PAGES, ratio: float = IMAGE_ONLY_RATIO) -> bool:
    """Decide whether a document is a scan without a text layer.

    Samples the first ``sample_pages`` pages; the document is image-only when
    at least ``ratio`` of them carry no extractable text.

    Args:
        doc: Opened PyMuPDF document
        sample_pages: Number of leading pages to inspect
        ratio: Share of text-less pages that marks the document image-only

    Returns:
        True for scanned documents
    """
    sampled = min(sample_pages, doc.page_count)
    if sampled == 0:
        return False

    without_text = 0
    for index in range(sampled):
        text = doc.load_page(index).get_text("text")
        if not text.strip():
            without_text += 1
    return without_text / sampled >= ratio


def pixmap_to_array(pixmap: Any) -> np.ndarray:
    """Copy a PyMuPDF pixmap into a numpy array (H, W, C)."""
    array = np.frombuffer(pixmap.samples, dtype=np.uint8).reshape(pixmap.height, pixmap.width, pixmap.n)
    return array.copy()


class PyMuPDFPageSource:
    """Page source rendering PDF pages to PNG files with PyMuPDF.

    The document stays open between ``open`` and ``close``. PyMuPDF
    documents are not thread-safe, so renders from concurrent batches take
    turns on an internal lock.

    Example:
        >>> source = PyMuPDFPageSource(dpi=300)
        >>> info = source.open(Path("document.pdf").read_bytes())
        >>> pages = source.render(1, 10, workspace)
        >>> source.close()
    """

    def __init__(self, dpi: int = DEFAULT_DPI):
        self.dpi = dpi
        self._doc: Any = None
        self._stack: ExitStack | None = None
        self._lock = threading.Lock()

    @property
    def zoom(self) -> float:
        return self.dpi / PDF_BASE_DPI

    def open(self, data: bytes) -> DocumentInfo:
        """Open a PDF from memory and read its page count and metadata.

        Raises:
            DocumentOpenError: If the bytes are not a readable PDF
        """
        self.close()

        stack = ExitStack()
        doc = stack.enter_context(open_pdf_stream(data))
        try:
            pdf_metadata = {key: value for key, value in (doc.metadata or {}).items() if value}
            metadata = DocumentMetadata(
                title=pdf_metadata.pop("title", None),
                is_image_only=is_image_only(doc),
                extra=pdf_metadata,
            )
            total_pages = doc.page_count
        except Exception as e:
            stack.close()
            raise DocumentOpenError(f"Failed to read PDF metadata: {e}") from e

        self._doc = doc
        self._stack = stack
        logger.info(
            "Opened PDF: %d pages, title=%s, image-only=%s", total_pages, metadata.title, metadata.is_image_only
        )
        return DocumentInfo(total_pages=total_pages, metadata=metadata)

    def render(self, start_page: int, end_page: int, workspace: Path) -> list[PageImage]:
        """Render pages ``start_page..end_page`` as PNG files in ``workspace``.

        Pages that fail to render are logged and left out of the result.

        Raises:
            RenderError: If no document is open
        """
        if self._doc is None:
            raise RenderError("No document is open")

        workspace.mkdir(parents=True, exist_ok=True)
        matrix = fitz.Matrix(self.zoom, self.zoom)
        pages: list[PageImage] = []

        for page_number in range(start_page, end_page + 1):
            if not 1 <= page_number <= self._doc.page_count:
                logger.warning("Page %d is outside the document (1-%d)", page_number, self._doc.page_count)
                continue

            path = workspace / f"page_{page_number:05d}.png"
            try:
                with self._lock:
                    pixmap = self._doc.load_page(page_number - 1).get_pixmap(matrix=matrix)
                    pixmap.save(str(path))
                    image = pixmap_to_array(pixmap)
            except Exception as e:  # noqa: BLE001 - one bad page must not stop the range
                logger.error("Failed to render page %d: %s", page_number, e)
                continue

            pages.append(PageImage(page_number=page_number, image=image, path=path))

        logger.debug("Rendered %d/%d pages into %s", len(pages), end_page - start_page + 1, workspace)
        return pages

    def release(self, workspace: Path) -> None:
        """Delete the page images ``render`` wrote into ``workspace``."""
        removed = 0
        for path in workspace.glob(PAGE_FILE_PATTERN):
            path.unlink(missing_ok=True)
            removed += 1
        logger.debug("Released %d page images from %s", removed, workspace)

    def close(self) -> None:
        if self._stack is not None:
            self._stack.close()
        self._stack = None
        self._doc = None
