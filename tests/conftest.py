"""Pytest configuration and shared fixtures for ocrbatch tests.

This module provides:
- make_scheduler: builds a BatchScheduler around the fakes in ``fakes.py``
- Sample image, configuration and PDF fixtures
- Test configuration and path setup
"""

from __future__ import annotations

import dataclasses
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np
import pytest

# Register anyio pytest plugin for async test support
# This enables @pytest.mark.anyio decorator and anyio_backends config option
pytest_plugins = ("anyio",)

# Ensure project root (ocrbatch) and this directory (fakes) are importable
TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
for path in (PROJECT_ROOT, TESTS_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fakes import (  # noqa: E402
    FakePageSource,
    FakeTransform,
    RecognizerFactory,
    RecordingListener,
    RecordingSink,
)

from ocrbatch.config import SchedulerConfig  # noqa: E402

# ==================== Fixtures ====================


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a sample test image (600x800 RGB) with a dark text-like band."""
    image = np.full((600, 800, 3), 255, dtype=np.uint8)
    image[280:320, 100:700] = 0
    return image


@pytest.fixture
def scheduler_config(tmp_path: Path) -> SchedulerConfig:
    """Configuration writing into the test's tmp directory."""
    return SchedulerConfig(
        output_dir=tmp_path / "output",
        temp_dir=tmp_path / "tmp",
        batch_size=10,
        max_concurrent=4,
        recognition_concurrency=2,
    )


@pytest.fixture
def recording_listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def make_scheduler(scheduler_config: SchedulerConfig, recording_listener: RecordingListener) -> Callable[..., Any]:
    """Build a BatchScheduler around fakes.

    Returns a function accepting ``source``, ``factory``, ``sink``,
    ``transform`` and any SchedulerConfig overrides. The fakes used are
    attached to the returned scheduler as ``fake_*`` attributes.
    """
    from ocrbatch.scheduler import BatchScheduler

    def build(
        source: FakePageSource | None = None,
        factory: RecognizerFactory | None = None,
        sink: RecordingSink | None = None,
        transform: FakeTransform | None = None,
        **overrides: Any,
    ) -> BatchScheduler:
        source = source or FakePageSource()
        factory = factory or RecognizerFactory()
        sink = sink or RecordingSink()
        transform = transform or FakeTransform()
        config = dataclasses.replace(scheduler_config, **overrides)

        scheduler = BatchScheduler(
            config,
            page_source=source,
            recognizer_factory=factory,
            output_sink_factory=lambda output_dir: sink,
            transform=transform,
            listeners=[recording_listener],
        )
        scheduler.fake_source = source  # type: ignore[attr-defined]
        scheduler.fake_factory = factory  # type: ignore[attr-defined]
        scheduler.fake_sink = sink  # type: ignore[attr-defined]
        scheduler.fake_transform = transform  # type: ignore[attr-defined]
        return scheduler

    return build


@pytest.fixture
def pdf_bytes() -> bytes:
    """A three-page PDF: two pages with text, one blank."""
    import fitz

    doc = fitz.open()
    for text in ("First page", "Second page", None):
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    doc.set_metadata({"title": "Sample", "author": "Tests"})
    data = doc.tobytes()
    doc.close()
    return data


# ==================== Async Configuration ====================


@pytest.fixture
def anyio_backend() -> str:
    """Force anyio to use asyncio backend only (trio not installed)."""
    return "asyncio"


# ==================== Helper Functions ====================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Scheduler scenarios with fake collaborators")
