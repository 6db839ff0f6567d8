"""Pytest fixtures specific to integration tests.

Integration tests run the full scheduler against fake collaborators.
Documents are fake byte buffers; the fake page source ignores them.
"""

from __future__ import annotations

import pytest


@pytest.fixture
def document() -> bytes:
    """Placeholder document bytes for the fake page source.

    Returns:
        Non-empty byte string
    """
    return b"%PDF-1.7 fake"
