"""Document inputs."""

from __future__ import annotations

from .pdf import PyMuPDFPageSource, is_image_only

__all__ = ["PyMuPDFPageSource", "is_image_only"]
