"""Pytest fixtures specific to unit tests.

Unit tests should be fast and isolated. These fixtures
ensure tests don't require tesseract or real documents.
"""

from __future__ import annotations

import pytest

from ocrbatch.metrics import MemorySample


@pytest.fixture
def memory_samples() -> list[MemorySample]:
    """Three samples whose fields peak at different times.

    Returns:
        Memory samples in time order
    """
    mb = 1024 * 1024
    return [
        MemorySample(timestamp=1.0, rss=100 * mb, vms=900 * mb, heap_used=10 * mb),
        MemorySample(timestamp=2.0, rss=300 * mb, vms=700 * mb, heap_used=5 * mb),
        MemorySample(timestamp=3.0, rss=200 * mb, vms=800 * mb, heap_used=20 * mb),
    ]
