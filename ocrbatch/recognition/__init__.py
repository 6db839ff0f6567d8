"""Text recognition: engine lifecycle management and the Tesseract backend.

Components:
- ManagedEngine: batch-private engine wrapper (lifecycle + worker pool)
- TesseractRecognizer: default Recognizer implementation
"""

from __future__ import annotations

from .engine import EngineState, ManagedEngine
from .tesseract import TesseractRecognizer, text_from_data

__all__ = [
    "EngineState",
    "ManagedEngine",
    "TesseractRecognizer",
    "text_from_data",
]
