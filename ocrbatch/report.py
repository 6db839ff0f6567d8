"""Performance and quality report.

The report is built once, after every batch has resolved, from the
scheduler's ``MetricsCollector`` and the final page results. Building is a
pure function; persisting and printing are separate helpers.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .constants import LOW_CONFIDENCE, LOW_SUCCESS_RATE, MEMORY_CEILING_MB, REPORT_FILENAME
from .conversion.output.json import save_json
from .exceptions import OutputError
from .misc import bytes_to_mb, from_timestamp, safe_ratio
from .types import average_confidence

if TYPE_CHECKING:
    from .config import SchedulerConfig
    from .metrics import MetricsCollector
    from .types import DocumentMetadata, PageResult

logger = logging.getLogger(__name__)

GOOD_PERFORMANCE = "Performance is good, no major optimization needed"


@dataclass(frozen=True)
class Report:
    """Immutable end-of-run snapshot.

    Attributes:
        summary: Timing and page counters
        performance: Memory, throughput and stage timings
        quality: Confidence and character statistics
        file_info: Document and batching facts
        recommendations: Heuristic suggestions, never empty
    """

    summary: dict[str, Any]
    performance: dict[str, Any]
    quality: dict[str, Any]
    file_info: dict[str, Any] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()

    @property
    def success_rate(self) -> float:
        return self.summary["success_rate"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "performance": self.performance,
            "quality": self.quality,
            "file_info": self.file_info,
            "recommendations": list(self.recommendations),
        }


def recommend(
    success_rate: float,
    peak_memory_mb: float,
    avg_confidence: float | None,
    low_success_rate: float = LOW_SUCCESS_RATE,
    memory_ceiling_mb: float = MEMORY_CEILING_MB,
    low_confidence: float = LOW_CONFIDENCE,
) -> list[str]:
    """Derive recommendations from the report figures.

    Args:
        success_rate: Successful pages in percent
        peak_memory_mb: Peak resident memory in MB
        avg_confidence: Average confidence of successful pages (None if there are none)

    Returns:
        At least one recommendation
    """
    recommendations: list[str] = []

    if success_rate < low_success_rate:
        recommendations.append(
            f"Success rate is {success_rate:.1f}%: improve image pre-processing or scan at a higher resolution"
        )
    if peak_memory_mb > memory_ceiling_mb:
        recommendations.append(
            f"Peak memory {peak_memory_mb:.0f} MB exceeds {memory_ceiling_mb:.0f} MB: reduce the batch size"
        )
    if avg_confidence is not None and avg_confidence < low_confidence:
        recommendations.append(
            f"Average confidence {avg_confidence:.1f} is below {low_confidence:.0f}: "
            "review recognizer language and engine settings"
        )

    return recommendations or [GOOD_PERFORMANCE]


def build_report(
    metrics: MetricsCollector,
    page_results: Sequence[PageResult],
    metadata: DocumentMetadata,
    config: SchedulerConfig,
    name: str | None = None,
) -> Report:
    """Build the end-of-run report.

    Args:
        metrics: Collector after ``finish()``
        page_results: One result per page
        metadata: Document metadata
        config: Effective run configuration (thresholds, batching)
        name: Document name for ``file_info``

    Returns:
        Report snapshot
    """
    total_pages = len(page_results)
    successful = [r for r in page_results if r.success]
    successful_pages = len(successful)
    failed_pages = total_pages - successful_pages
    total_time = metrics.elapsed

    success_rate = min(max(safe_ratio(successful_pages, total_pages) * 100, 0.0), 100.0)
    pages_per_second = safe_ratio(total_pages, total_time)

    summary = {
        "total_time": round(total_time, 3),
        "avg_time_per_page": round(safe_ratio(total_time, total_pages), 4),
        "pages_per_second": round(pages_per_second, 3),
        "success_rate": round(success_rate, 2),
        "total_pages": total_pages,
        "successful_pages": successful_pages,
        "failed_pages": failed_pages,
        "start_time": from_timestamp(metrics.start_time).isoformat() if metrics.start_time else None,
        "end_time": from_timestamp(metrics.end_time).isoformat() if metrics.end_time else None,
    }

    memory_peak = metrics.memory_peak()
    performance = {
        "memory_peak": memory_peak,
        "memory_current": metrics.memory_current(),
        "throughput": {
            "pages_per_second": round(pages_per_second, 3),
            "total_pages": total_pages,
            "successful_pages": successful_pages,
        },
        "stage_timings": metrics.stage_report(),
    }

    avg_confidence = (
        average_confidence([r.confidence for r in successful if r.confidence is not None])
        if successful
        else None
    )
    total_characters = sum(r.character_count for r in successful)
    quality = {
        "average_confidence": round(avg_confidence, 2) if avg_confidence is not None else 0.0,
        "total_characters": total_characters,
        "avg_chars_per_page": round(safe_ratio(total_characters, successful_pages), 1),
        "transform_skipped_pages": sum(1 for r in successful if r.transform_skipped),
    }

    file_info = {
        "name": name,
        "title": metadata.title,
        "is_image_only": metadata.is_image_only,
        "total_pages": total_pages,
        "batch_size": config.batch_size,
        "batch_count": -(-total_pages // config.batch_size) if total_pages else 0,
        "max_concurrent": config.max_concurrent,
        "recognition_concurrency": config.recognition_concurrency,
        "preprocess": config.preprocess,
    }

    recommendations = recommend(
        success_rate=success_rate,
        peak_memory_mb=bytes_to_mb(memory_peak.get("rss", 0)),
        avg_confidence=avg_confidence,
        low_success_rate=config.low_success_rate,
        memory_ceiling_mb=config.memory_ceiling_mb,
        low_confidence=config.low_confidence,
    )

    return Report(
        summary=summary,
        performance=performance,
        quality=quality,
        file_info=file_info,
        recommendations=tuple(recommendations),
    )


def save_report(report: Report, output_dir: Path, filename: str = REPORT_FILENAME) -> Path:
    """Write the report as JSON into ``output_dir``.

    Raises:
        OutputError: If the file cannot be written
    """
    path = Path(output_dir) / filename
    try:
        save_json(report.to_dict(), path)
    except OSError as e:
        raise OutputError(f"Failed to save report to {path}: {e}") from e

    logger.info("Performance report saved: %s", path)
    return path


def log_summary(report: Report) -> None:
    """Log the headline figures and recommendations of a report."""
    summary = report.summary
    logger.info(
        "Processed %d pages in %.2fs (%.2f pages/s): %d succeeded, %d failed, success rate %.1f%%",
        summary["total_pages"],
        summary["total_time"],
        summary["pages_per_second"],
        summary["successful_pages"],
        summary["failed_pages"],
        summary["success_rate"],
    )
    peak = report.performance["memory_peak"]
    if peak:
        logger.info("Peak memory: RSS %.2f MB, heap %.2f MB", bytes_to_mb(peak["rss"]), bytes_to_mb(peak["heap_used"]))
    logger.info(
        "Average confidence %.1f, %d characters recognized",
        report.quality["average_confidence"],
        report.quality["total_characters"],
    )
    for recommendation in report.recommendations:
        logger.info("Recommendation: %s", recommendation)


def print_report(report: Report) -> None:
    """Print a formatted report table."""
    summary = report.summary

    print("\n" + "=" * 70)
    print("OCR BATCH REPORT")
    print("=" * 70)
    print(f"{'Pages':<30} {summary['successful_pages']}/{summary['total_pages']} succeeded")
    print(f"{'Success rate':<30} {summary['success_rate']:.1f}%")
    print(f"{'Total time':<30} {summary['total_time']:.2f}s")
    print(f"{'Throughput':<30} {summary['pages_per_second']:.2f} pages/s")
    print(f"{'Average confidence':<30} {report.quality['average_confidence']:.1f}")

    stages = report.performance["stage_timings"]
    if stages:
        print(f"\n{'Stage':<30} {'Calls':<8} {'Avg (s)':<10} {'Total (s)':<10} {'%':<8}")
        print("-" * 70)
        for stage in stages:
            print(
                f"{stage['name']:<30} "
                f"{stage['calls']:<8} "
                f"{stage['avg_time']:>8.3f}s "
                f"{stage['total_time']:>8.3f}s "
                f"{stage['percentage']:>6.1f}%"
            )

    print("-" * 70)
    for recommendation in report.recommendations:
        print(f"* {recommendation}")
    print("=" * 70)
