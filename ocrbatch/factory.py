"""Component factory for the default scheduler wiring.

This module provides:
- ComponentFactory: Creates the default collaborators from a SchedulerConfig
- create_default_scheduler: One-call construction of a ready BatchScheduler
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .config import SchedulerConfig
    from .conversion import FileOutputSink, PyMuPDFPageSource
    from .preprocessing import OpenCVImageTransform
    from .recognition import TesseractRecognizer
    from .scheduler import BatchScheduler
    from .types import ProgressListener

logger = logging.getLogger(__name__)


class ComponentFactory:
    """Creates the default PyMuPDF / OpenCV / Tesseract / file collaborators.

    Heavy libraries are imported when a component is first created.

    Example:
        >>> config = SchedulerConfig(languages=("eng",))
        >>> config.validate()
        >>>
        >>> factory = ComponentFactory(config)
        >>> source = factory.create_page_source()
        >>> recognizer = factory.create_recognizer()
    """

    def __init__(self, config: SchedulerConfig):
        """Initialize component factory.

        Args:
            config: Validated scheduler configuration
        """
        self.config = config

    def create_page_source(self) -> PyMuPDFPageSource:
        from .conversion import PyMuPDFPageSource

        return PyMuPDFPageSource(dpi=self.config.dpi)

    def create_transform(self) -> OpenCVImageTransform:
        from .preprocessing import OpenCVImageTransform

        return OpenCVImageTransform(self.config.preprocess_steps)

    def create_recognizer(self) -> TesseractRecognizer:
        """Create a fresh recognizer. Called once per batch."""
        from .recognition import TesseractRecognizer

        return TesseractRecognizer(languages=self.config.languages, psm=self.config.psm, oem=self.config.oem)

    def create_output_sink(self, output_dir: Path) -> FileOutputSink:
        from .conversion import FileOutputSink

        return FileOutputSink(output_dir, formats=self.config.output_formats)


def create_default_scheduler(
    config: SchedulerConfig,
    listeners: Sequence[ProgressListener] | None = None,
) -> BatchScheduler:
    """Build a BatchScheduler wired to the default collaborators.

    Args:
        config: Scheduler configuration (validated here)
        listeners: Progress listeners (default: LoggingProgressListener)

    Returns:
        Ready-to-run scheduler

    Raises:
        InvalidConfigError: If the configuration is invalid

    Example:
        >>> scheduler = create_default_scheduler(SchedulerConfig(batch_size=20))
        >>> result = scheduler.run(Path("book.pdf").read_bytes())
    """
    from .scheduler import BatchScheduler

    config.validate()
    factory = ComponentFactory(config)

    logger.info(
        "Creating scheduler: batch_size=%d, max_concurrent=%d, recognizer=tesseract(%s)",
        config.batch_size,
        config.max_concurrent,
        "+".join(config.languages),
    )
    return BatchScheduler(
        config,
        page_source=factory.create_page_source(),
        recognizer_factory=factory.create_recognizer,
        output_sink_factory=factory.create_output_sink,
        transform=factory.create_transform(),
        listeners=listeners,
    )
