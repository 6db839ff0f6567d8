"""JSON output conversion utilities."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ...misc import tz_now

if TYPE_CHECKING:
    from ...types import Batch, DocumentMetadata, PageResult

logger = logging.getLogger(__name__)


def page_statistics(result: PageResult) -> dict[str, Any]:
    """Text statistics for a successful page."""
    text = result.text or ""
    return {
        "character_count": len(text),
        "line_count": len(text.split("\n")) if text else 0,
        "word_count": len(text.split()),
        "processing_time_ms": result.processing_time_ms,
    }


def build_document_payload(
    page_results: Sequence[PageResult],
    metadata: DocumentMetadata,
    batch: Batch | None = None,
) -> dict[str, Any]:
    """Build the structured JSON document for a set of page results.

    Successful pages are listed under ``pages`` with their statistics;
    failed pages are listed separately with their error.

    Args:
        page_results: Page results (any order)
        metadata: Document metadata
        batch: Batch the results belong to, None for the whole document

    Returns:
        JSON-serializable dictionary

    Example:
        >>> payload = build_document_payload(results, DocumentMetadata(title="Report"))
        >>> payload["metadata"]["successful_pages"]
        23
    """
    ordered = sorted(page_results, key=lambda r: r.page_number)
    successful = [r for r in ordered if r.success]
    failed = [r for r in ordered if not r.success]

    payload: dict[str, Any] = {
        "metadata": {
            **metadata.to_dict(),
            "processed_at": tz_now().isoformat(),
            "total_pages": len(ordered),
            "successful_pages": len(successful),
            "failed_pages": len(failed),
        },
        "pages": [
            {
                "page_number": r.page_number,
                "text": r.text,
                "confidence": r.confidence,
                "transform_skipped": r.transform_skipped,
                "statistics": page_statistics(r),
            }
            for r in successful
        ],
        "failed_pages": [{"page_number": r.page_number, "error": r.error} for r in failed],
    }
    if batch is not None:
        payload["batch"] = batch.to_dict()
    return payload


def save_json(payload: dict[str, Any], output_path: Path, indent: int = 2) -> int:
    """Save a payload to a JSON file.

    Args:
        payload: JSON-serializable dictionary
        output_path: Output JSON file path
        indent: JSON indentation level (default: 2)

    Returns:
        Number of bytes written

    Raises:
        OSError: If file cannot be written
    """
    output_path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(payload, indent=indent, ensure_ascii=False)
    output_path.write_text(content, encoding="utf-8")

    logger.debug("Saved JSON to %s", output_path)
    return len(content.encode("utf-8"))
