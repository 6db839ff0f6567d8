"""Plain text output conversion."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from ...misc import tz_now

if TYPE_CHECKING:
    from ...types import DocumentMetadata, PageResult

logger = logging.getLogger(__name__)

HEADER_RULE = "=" * 50
PAGE_RULE = "-" * 30


def render_text(
    page_results: Sequence[PageResult],
    metadata: DocumentMetadata,
    include_page_numbers: bool = True,
) -> str:
    """Render successful pages as one text document, in page order.

    Example:
        >>> print(render_text(results, DocumentMetadata(title="scan"), include_page_numbers=False))
    """
    successful = sorted((r for r in page_results if r.success), key=lambda r: r.page_number)

    parts: list[str] = []
    if include_page_numbers:
        parts.append(
            f"OCR result\n"
            f"File: {metadata.title or 'unknown'}\n"
            f"Total pages: {len(page_results)}\n"
            f"Generated: {tz_now().isoformat(timespec='seconds')}\n"
            f"{HEADER_RULE}\n"
        )

    for result in successful:
        if include_page_numbers:
            parts.append(f"Page {result.page_number}\n{PAGE_RULE}")
        parts.append(f"{(result.text or '').strip()}\n")

    return "\n".join(parts)


def save_text(content: str, output_path: Path) -> int:
    """Write text to ``output_path`` and return the number of bytes written."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8")
    output_path.write_bytes(data)
    logger.debug("Saved text to %s", output_path)
    return len(data)
