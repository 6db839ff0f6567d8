"""Tesseract recognizer backed by pytesseract."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import numpy as np
import pytesseract
from PIL import Image

from ocrbatch.constants import DEFAULT_LANGUAGES, DEFAULT_OEM, DEFAULT_PSM
from ocrbatch.exceptions import DependencyError, EngineInitializationError, RecognitionError
from ocrbatch.types import Recognition

logger = logging.getLogger(__name__)


def text_from_data(data: dict[str, list[Any]]) -> tuple[str, list[float]]:
    """Rebuild page text and word confidences from ``image_to_data`` output.

    Words are joined by spaces within a line, lines by newlines, and
    paragraphs/blocks by a blank line.

    Args:
        data: ``pytesseract.image_to_data(..., output_type=Output.DICT)`` result

    Returns:
        Tuple of (text, per-word confidences on a 0-100 scale)
    """
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    for i, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        confidences.append(float(data["conf"][i]))

    parts: list[str] = []
    previous_paragraph: tuple[int, int] | None = None
    for (block, paragraph, _line), words in lines.items():
        if previous_paragraph is not None and (block, paragraph) != previous_paragraph:
            parts.append("")
        parts.append(" ".join(words))
        previous_paragraph = (block, paragraph)

    return "\n".join(parts), confidences


class TesseractRecognizer:
    """Recognizer running the Tesseract CLI through pytesseract.

    Each ``recognize`` call spawns its own tesseract process, so one
    instance can serve several recognition workers at once.

    Attributes:
        name: Recognizer identifier
        languages: Tesseract language packs, joined with "+"
        psm: Page segmentation mode
        oem: OCR engine mode

    Example:
        >>> recognizer = TesseractRecognizer(languages=("eng",))
        >>> recognizer.initialize()
        >>> result = recognizer.recognize(image)
        >>> recognizer.terminate()
    """

    name = "tesseract"

    def __init__(
        self,
        languages: Sequence[str] = DEFAULT_LANGUAGES,
        psm: int = DEFAULT_PSM,
        oem: int = DEFAULT_OEM,
    ):
        self.languages = tuple(languages)
        self.psm = psm
        self.oem = oem
        self.initialized = False
        self.version: str | None = None

    @property
    def lang(self) -> str:
        return "+".join(self.languages)

    @property
    def tesseract_config(self) -> str:
        return f"--oem {self.oem} --psm {self.psm}"

    def initialize(self) -> None:
        """Check that tesseract and the requested language packs are installed.

        Raises:
            DependencyError: If the tesseract executable is not installed
            EngineInitializationError: If tesseract fails or a language pack is missing
        """
        if self.initialized:
            return

        try:
            self.version = str(pytesseract.get_tesseract_version())
            installed = set(pytesseract.get_languages(config=""))
        except pytesseract.TesseractNotFoundError as e:
            raise DependencyError(f"Tesseract executable not found: {e}") from e
        except (pytesseract.TesseractError, OSError) as e:
            raise EngineInitializationError(f"Tesseract is not available: {e}") from e

        missing = [lang for lang in self.languages if lang not in installed]
        if missing:
            raise EngineInitializationError(f"Tesseract language data not installed: {missing}")

        self.initialized = True
        logger.info("Tesseract %s initialized (lang=%s, %s)", self.version, self.lang, self.tesseract_config)

    def recognize(self, image: np.ndarray) -> Recognition:
        """Recognize text in a page image.

        Raises:
            RecognitionError: If tesseract fails on this image
        """
        if not self.initialized:
            self.initialize()

        start = time.perf_counter()
        try:
            data = pytesseract.image_to_data(
                Image.fromarray(np.asarray(image)),
                lang=self.lang,
                config=self.tesseract_config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, RuntimeError, ValueError) as e:
            raise RecognitionError(f"Tesseract failed: {e}") from e

        text, confidences = text_from_data(data)
        return Recognition(
            text=text,
            confidence_per_unit=confidences,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )

    def terminate(self) -> None:
        """Mark the engine stopped. Each call runs its own process, so nothing is held."""
        if self.initialized:
            logger.debug("Tesseract engine terminated")
        self.initialized = False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(lang={self.lang!r}, psm={self.psm}, oem={self.oem})"
