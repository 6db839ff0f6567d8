"""Document conversion: PDF page rendering and output materialization."""

from __future__ import annotations

from .input import PyMuPDFPageSource
from .output import FileOutputSink

__all__ = ["FileOutputSink", "PyMuPDFPageSource"]
