"""Tests for OpenCV pre-processing steps and the image transform."""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from ocrbatch.exceptions import InvalidConfigError
from ocrbatch.preprocessing import (
    STEP_FUNCTIONS,
    OpenCVImageTransform,
    binarize,
    denoise,
    deskew,
    enhance_contrast,
    estimate_skew,
    to_grayscale,
)


def rotated(image: np.ndarray, angle: float) -> np.ndarray:
    height, width = image.shape[:2]
    matrix = cv2.getRotationMatrix2D((width / 2, height / 2), angle, 1.0)
    return cv2.warpAffine(image, matrix, (width, height), borderValue=(255, 255, 255))


class TestSteps:
    """Tests for individual enhancement steps."""

    def test_grayscale_rgb(self, sample_image: np.ndarray):
        gray = to_grayscale(sample_image)

        assert gray.shape == (600, 800)
        assert gray[300, 400] == 0
        assert gray[0, 0] == 255

    def test_grayscale_rgba(self):
        image = np.full((10, 10, 4), 200, dtype=np.uint8)

        assert to_grayscale(image).shape == (10, 10)

    def test_grayscale_of_gray_is_copy(self):
        image = np.zeros((10, 10), dtype=np.uint8)

        gray = to_grayscale(image)

        assert gray is not image
        assert np.array_equal(gray, image)

    def test_denoise_removes_speckle(self):
        image = np.full((20, 20), 255, dtype=np.uint8)
        image[10, 10] = 0

        assert denoise(image)[10, 10] == 255

    def test_contrast_stretches_values(self):
        image = np.array([[100, 200]], dtype=np.uint8)

        assert enhance_contrast(image).tolist() == [[150, 255]]

    def test_binarize_outputs_two_levels(self, sample_image: np.ndarray):
        binary = binarize(sample_image)

        assert binary.ndim == 2
        assert set(np.unique(binary)) <= {0, 255}
        assert binary[300, 400] == 0

    def test_step_registry(self):
        assert list(STEP_FUNCTIONS) == ["grayscale", "denoise", "contrast", "binarization", "deskew"]


class TestDeskew:
    """Tests for skew estimation and correction."""

    def test_horizontal_text_has_no_skew(self, sample_image: np.ndarray):
        assert abs(estimate_skew(sample_image)) < 0.5

    def test_estimates_small_rotation(self, sample_image: np.ndarray):
        angle = estimate_skew(rotated(sample_image, 3.0))

        assert abs(abs(angle) - 3.0) < 1.0

    def test_blank_page(self):
        assert estimate_skew(np.full((50, 50), 255, dtype=np.uint8)) == 0.0

    def test_corrects_small_rotation(self, sample_image: np.ndarray):
        skewed = rotated(sample_image, 3.0)

        corrected = deskew(skewed)

        assert corrected.shape == skewed.shape
        assert abs(estimate_skew(corrected)) < abs(estimate_skew(skewed))

    def test_leaves_large_rotation_alone(self, sample_image: np.ndarray):
        skewed = rotated(sample_image, 20.0)

        result = deskew(skewed)

        assert result is not skewed
        assert np.array_equal(result, skewed)


class TestOpenCVImageTransform:
    """Tests for OpenCVImageTransform."""

    def test_default_pipeline(self, sample_image: np.ndarray):
        result = OpenCVImageTransform().apply(sample_image)

        assert result.shape == (600, 800)
        assert set(np.unique(result)) <= {0, 255}

    def test_input_not_modified(self, sample_image: np.ndarray):
        original = sample_image.copy()

        OpenCVImageTransform(["grayscale", "denoise", "contrast"]).apply(sample_image)

        assert np.array_equal(sample_image, original)

    def test_no_steps_returns_copy(self, sample_image: np.ndarray):
        result = OpenCVImageTransform([]).apply(sample_image)

        assert result is not sample_image
        assert np.array_equal(result, sample_image)

    def test_unknown_step(self):
        with pytest.raises(InvalidConfigError, match="sharpen"):
            OpenCVImageTransform(["grayscale", "sharpen"])

    def test_steps_run_in_order(self, sample_image: np.ndarray):
        transform = OpenCVImageTransform(["binarization", "grayscale"])

        assert transform.apply(sample_image).ndim == 2
        assert "binarization" in repr(transform)
