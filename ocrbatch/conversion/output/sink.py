"""File-based output sink."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from ...constants import OUTPUT_FORMATS
from ...exceptions import InvalidConfigError, OutputError
from ...types import OutputArtifact
from .json import build_document_payload, save_json
from .plaintext import render_text, save_text

if TYPE_CHECKING:
    from ...types import Batch, DocumentMetadata, PageResult

logger = logging.getLogger(__name__)

BATCH_DIR = "batches"


class FileOutputSink:
    """Writes page results into an output directory.

    Final emission (``batch=None``) writes ``output.<format>`` for every
    configured format. Batch emission writes a batch-scoped
    ``batches/batch_NNNN.json`` file, so concurrent batches never touch the
    same file.

    Example:
        >>> sink = FileOutputSink(Path("output"), formats=("txt", "json"))
        >>> artifacts = sink.emit(results, metadata)
        >>> artifacts["txt"].locator
        'output/output.txt'
    """

    def __init__(
        self,
        output_dir: Path,
        formats: Sequence[str] = OUTPUT_FORMATS,
        include_page_numbers: bool = True,
    ):
        unknown = [fmt for fmt in formats if fmt not in OUTPUT_FORMATS]
        if unknown:
            raise InvalidConfigError(f"Unsupported output formats: {unknown}")
        self.output_dir = Path(output_dir)
        self.formats = tuple(formats)
        self.include_page_numbers = include_page_numbers

    def emit(
        self,
        page_results: Sequence[PageResult],
        metadata: DocumentMetadata,
        batch: Batch | None = None,
    ) -> dict[str, OutputArtifact]:
        """Write results and return the artifacts keyed by format.

        Raises:
            OutputError: If a file cannot be written
        """
        if batch is not None:
            return {"batch": self._emit_batch(page_results, metadata, batch)}

        artifacts: dict[str, OutputArtifact] = {}
        page_count = sum(1 for r in page_results if r.success)
        for fmt in self.formats:
            path = self.output_dir / f"output.{fmt}"
            try:
                if fmt == "txt":
                    size = save_text(render_text(page_results, metadata, self.include_page_numbers), path)
                else:
                    size = save_json(build_document_payload(page_results, metadata), path)
            except OSError as e:
                raise OutputError(f"Failed to write {path}: {e}") from e

            artifacts[fmt] = OutputArtifact(locator=str(path), byte_size=size, page_count=page_count)
            logger.info("Saved %s output: %s (%d bytes)", fmt, path, size)
        return artifacts

    def _emit_batch(
        self,
        page_results: Sequence[PageResult],
        metadata: DocumentMetadata,
        batch: Batch,
    ) -> OutputArtifact:
        path = self.output_dir / BATCH_DIR / f"batch_{batch.batch_number:04d}.json"
        try:
            size = save_json(build_document_payload(page_results, metadata, batch), path)
        except OSError as e:
            raise OutputError(f"Failed to write {path}: {e}") from e

        return OutputArtifact(
            locator=str(path),
            byte_size=size,
            page_count=sum(1 for r in page_results if r.success),
        )
