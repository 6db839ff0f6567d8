"""Output formats and the file output sink."""

from __future__ import annotations

from .json import build_document_payload, page_statistics, save_json
from .plaintext import render_text, save_text
from .sink import FileOutputSink

__all__ = [
    "FileOutputSink",
    "build_document_payload",
    "page_statistics",
    "render_text",
    "save_json",
    "save_text",
]
