"""Document-level data types: metadata, output artifacts and run results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ocrbatch.metrics import MetricsCollector
    from ocrbatch.report import Report

    from .batch import PageResult


@dataclass(frozen=True)
class DocumentMetadata:
    """Per-document metadata reported by the page source.

    Attributes:
        title: Document title, if the file carries one
        is_image_only: True when sampled pages carry no text layer (scanned document)
        extra: Additional source-specific metadata (author, producer, ...)
    """

    title: str | None = None
    is_image_only: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "is_image_only": self.is_image_only, **self.extra}


@dataclass(frozen=True)
class DocumentInfo:
    """What the page source learned when opening a document."""

    total_pages: int
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)


@dataclass(frozen=True)
class OutputArtifact:
    """One materialized output (a file, an object key, ...).

    Attributes:
        locator: Where the artifact lives (file path or URI)
        byte_size: Size of the written payload in bytes
        page_count: Number of pages with text included in the artifact
    """

    locator: str
    byte_size: int
    page_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"locator": self.locator, "byte_size": self.byte_size, "page_count": self.page_count}


@dataclass
class RunResult:
    """Result of ``BatchScheduler.run``.

    Either ``success`` is True and the page results, metrics and report are
    populated, or ``success`` is False and ``error`` explains the fatal
    initialization failure.
    """

    success: bool
    page_results: list[PageResult] = field(default_factory=list)
    metrics: MetricsCollector | None = None
    metadata: DocumentMetadata | None = None
    report: Report | None = None
    outputs: dict[str, OutputArtifact] = field(default_factory=dict)
    report_path: str | None = None
    output_error: str | None = None
    error: str | None = None
    name: str | None = None

    @classmethod
    def fatal(cls, error: str, metrics: MetricsCollector | None = None) -> RunResult:
        return cls(success=False, error=error, metrics=metrics)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"name": self.name, "success": False, "error": self.error}
        return {
            "name": self.name,
            "success": True,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "page_results": [r.to_dict() for r in self.page_results],
            "outputs": {fmt: artifact.to_dict() for fmt, artifact in self.outputs.items()},
            "report_path": self.report_path,
            "output_error": self.output_error,
        }
