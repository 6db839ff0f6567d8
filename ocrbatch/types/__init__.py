"""Data types and collaborator interfaces for the batch OCR scheduler."""

from __future__ import annotations

from .batch import (
    Batch,
    BatchOutcome,
    BatchState,
    PageImage,
    PageResult,
    Recognition,
    average_confidence,
)
from .document import DocumentInfo, DocumentMetadata, OutputArtifact, RunResult
from .interfaces import ImageTransform, OutputSink, PageSource, ProgressListener, Recognizer

__all__ = [
    # Batch types
    "Batch",
    "BatchOutcome",
    "BatchState",
    "PageImage",
    "PageResult",
    "Recognition",
    "average_confidence",
    # Document types
    "DocumentInfo",
    "DocumentMetadata",
    "OutputArtifact",
    "RunResult",
    # Interfaces
    "ImageTransform",
    "OutputSink",
    "PageSource",
    "ProgressListener",
    "Recognizer",
]
