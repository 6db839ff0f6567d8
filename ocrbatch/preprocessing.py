"""Image pre-processing for recognition.

``OpenCVImageTransform`` applies a configured sequence of OpenCV steps to
one page image. Every step returns a new array; the input image is never
modified, so a failing transform can fall back to the original.

Supported steps (applied in the configured order):
- grayscale: RGB/RGBA to single channel
- denoise: median blur
- contrast: linear contrast stretch
- binarization: Otsu threshold
- deskew: rotate small skews back to horizontal
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import cv2
import numpy as np

from .constants import (
    CONTRAST_ALPHA,
    CONTRAST_BETA,
    DENOISE_KERNEL_SIZE,
    DESKEW_MAX_ANGLE,
    PREPROCESS_STEPS,
)
from .exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

MIN_DESKEW_POINTS = 50
MIN_DESKEW_ANGLE = 0.1


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image.copy()
    channels = image.shape[2]
    if channels == 1:
        return image[:, :, 0].copy()
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


def denoise(image: np.ndarray) -> np.ndarray:
    return cv2.medianBlur(image, DENOISE_KERNEL_SIZE)


def enhance_contrast(image: np.ndarray) -> np.ndarray:
    return cv2.convertScaleAbs(image, alpha=CONTRAST_ALPHA, beta=CONTRAST_BETA)


def binarize(image: np.ndarray) -> np.ndarray:
    """Otsu threshold; color input is converted to grayscale first."""
    gray = to_grayscale(image)
    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return binary


def estimate_skew(image: np.ndarray) -> float:
    """Estimate the skew angle (degrees) from the dark pixels of a page.

    Returns:
        Angle in ``[-45, 45]``; 0.0 when there is too little ink to tell
    """
    gray = to_grayscale(image)
    _, ink = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    ys, xs = np.nonzero(ink)
    if len(xs) < MIN_DESKEW_POINTS:
        return 0.0

    points = np.column_stack((xs, ys)).astype(np.float32)
    box = cv2.boxPoints(cv2.minAreaRect(points))

    # Measure the longest box edge; the minAreaRect angle convention differs between OpenCV versions
    edges = [box[(i + 1) % 4] - box[i] for i in range(4)]
    dx, dy = max(edges, key=lambda edge: float(np.hypot(edge[0], edge[1])))
    angle = float(np.degrees(np.arctan2(dy, dx)))

    if angle > 90:
        angle -= 180
    elif angle <= -90:
        angle += 180
    if angle > 45:
        angle -= 90
    elif angle < -45:
        angle += 90
    return angle


def deskew(image: np.ndarray, max_angle: float = DESKEW_MAX_ANGLE) -> np.ndarray:
    """Rotate the page so text lines are horizontal.

    Skews larger than ``max_angle`` are treated as intentional rotation and
    left alone.
    """
    angle = estimate_skew(image)
    if abs(angle) < MIN_DESKEW_ANGLE or abs(angle) > max_angle:
        return image.copy()

    height, width = image.shape[:2]
    matrix = cv2.getRotationMatrix2D((width / 2, height / 2), angle, 1.0)
    logger.debug("Deskewing page by %.2f degrees", angle)
    return cv2.warpAffine(
        image,
        matrix,
        (width, height),
        flags=cv2.INTER_CUBIC,
        borderMode=cv2.BORDER_REPLICATE,
    )


STEP_FUNCTIONS: dict[str, Callable[[np.ndarray], np.ndarray]] = {
    "grayscale": to_grayscale,
    "denoise": denoise,
    "contrast": enhance_contrast,
    "binarization": binarize,
    "deskew": deskew,
}


class OpenCVImageTransform:
    """Image transform applying a list of OpenCV enhancement steps.

    Args:
        steps: Step names, applied in order

    Raises:
        InvalidConfigError: If a step name is unknown

    Example:
        >>> transform = OpenCVImageTransform(["grayscale", "binarization"])
        >>> enhanced = transform.apply(page.image)
    """

    def __init__(self, steps: Sequence[str] = PREPROCESS_STEPS):
        unknown = [step for step in steps if step not in STEP_FUNCTIONS]
        if unknown:
            raise InvalidConfigError(
                f"Unknown preprocess steps: {unknown}. Must be among: {list(STEP_FUNCTIONS)}"
            )
        self.steps = tuple(steps)

    def apply(self, image: np.ndarray) -> np.ndarray:
        result = image
        for step in self.steps:
            result = STEP_FUNCTIONS[step](result)
        return result if result is not image else image.copy()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(steps={list(self.steps)})"
