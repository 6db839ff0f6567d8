"""Custom exception classes for the batch OCR scheduler.

Exception Hierarchy:
    OCRBatchError (base)
    ├── ConfigurationError
    │   ├── InvalidConfigError
    │   └── MissingConfigError
    ├── ProcessingError
    │   ├── DocumentOpenError
    │   ├── BatchError
    │   ├── RenderError
    │   ├── EngineInitializationError
    │   ├── RecognitionError
    │   └── OutputError
    └── DependencyError

DocumentOpenError is fatal to a run, and so is an OutputError raised while
creating the run's output sink. Everything raised while a batch renders,
sets up its engine or emits output is contained at the batch boundary, and
RecognitionError is contained at the page boundary.

Usage:
    try:
        engine.initialize()
    except EngineInitializationError as e:
        logger.error("Engine unavailable: %s", e)
"""

from __future__ import annotations


class OCRBatchError(Exception):
    """Base exception for all scheduler errors."""


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(OCRBatchError):
    """Base exception for configuration-related errors."""


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid.

    Examples:
        - Non-positive batch size or concurrency
        - Unknown pre-processing step
        - Unknown output format
    """


class MissingConfigError(ConfigurationError):
    """Raised when required configuration is missing.

    Examples:
        - Config file path given but not found
    """


# ============================================================================
# Processing Errors
# ============================================================================


class ProcessingError(OCRBatchError):
    """Base exception for document processing errors."""


class DocumentOpenError(ProcessingError):
    """Raised when a document cannot be opened or its page count is unknown.

    The run stops without processing any batch.
    """


class BatchError(ProcessingError):
    """Raised when a batch cannot proceed as a unit.

    Carries the batch number so the scheduler can report which range failed.
    """

    def __init__(self, batch_number: int, message: str):
        self.batch_number = batch_number
        super().__init__(f"[batch {batch_number}] {message}")


class RenderError(ProcessingError):
    """Raised when a page range cannot be rendered."""


class EngineInitializationError(ProcessingError):
    """Raised when a recognition engine fails to start."""


class RecognitionError(ProcessingError):
    """Raised when recognizing a single page fails."""


class OutputError(ProcessingError):
    """Raised when writing output artifacts or the report fails."""


# ============================================================================
# Dependency Errors
# ============================================================================


class DependencyError(OCRBatchError):
    """Raised when an external binary or library is missing.

    Examples:
        - Tesseract executable not on PATH
        - Missing language data
    """
