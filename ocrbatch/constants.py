"""Shared constants for the batch OCR scheduler."""

# =============================================================================
# Batching
# =============================================================================
DEFAULT_BATCH_SIZE = 10
"""Pages per batch (the failure-containment unit)."""

DEFAULT_MAX_CONCURRENT = 4
"""Batches running at the same time."""

DEFAULT_RECOGNITION_CONCURRENCY = 2
"""Recognition workers inside one batch."""

DEFAULT_BATCH_RETRY_ATTEMPTS = 0
"""Extra attempts for a batch-unit failure (0 = fail immediately)."""

# =============================================================================
# Engine Lifecycle
# =============================================================================
DEFAULT_REINITIALIZE_EVERY = 100
"""Recycle the active engine each time this many more pages are processed."""

# =============================================================================
# Rendering
# =============================================================================
DEFAULT_DPI = 300
"""Rendering resolution for page images."""

PDF_BASE_DPI = 72
"""PDF user-space units per inch."""

IMAGE_ONLY_SAMPLE_PAGES = 5
"""Pages sampled to decide whether a document is image-only."""

IMAGE_ONLY_RATIO = 0.8
"""Share of sampled pages without a text layer that marks a document image-only."""

# =============================================================================
# Pre-processing
# =============================================================================
PREPROCESS_STEPS = ("grayscale", "denoise", "contrast", "binarization", "deskew")
"""Supported enhancement steps, in their default order."""

DENOISE_KERNEL_SIZE = 3
"""Median blur kernel size."""

CONTRAST_ALPHA = 1.5
"""Linear contrast gain."""

CONTRAST_BETA = 0
"""Linear brightness offset."""

DESKEW_MAX_ANGLE = 5.0
"""Largest skew (degrees) that deskew corrects."""

# =============================================================================
# Recognition
# =============================================================================
DEFAULT_LANGUAGES = ("chi_sim", "chi_tra")
"""Tesseract language packs."""

DEFAULT_PSM = 6
"""Tesseract page segmentation mode (uniform block of text)."""

DEFAULT_OEM = 1
"""Tesseract OCR engine mode (LSTM only)."""

# =============================================================================
# Output & Reporting
# =============================================================================
OUTPUT_FORMATS = ("txt", "json")
"""Formats supported by the file output sink."""

REPORT_FILENAME = "performance-report.json"
"""Report file written into the output directory."""

DEFAULT_STATUS_INTERVAL = 100
"""Emit a status update every time this many more pages are processed."""

LOW_SUCCESS_RATE = 90.0
"""Success rate (%) below which pre-processing improvements are recommended."""

MEMORY_CEILING_MB = 500.0
"""Peak memory (MB) above which a smaller batch size is recommended."""

LOW_CONFIDENCE = 60.0
"""Average confidence (0-100) below which engine settings should be reviewed."""

BYTES_PER_MB = 1024 * 1024
