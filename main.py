#!/usr/bin/env python3
"""
Main entry point for the batch OCR scheduler
Provides command-line interface for recognizing text in long PDF documents
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Scheduler imports are function-level to keep --help fast
if TYPE_CHECKING:
    from ocrbatch import BatchScheduler, RunResult


def setup_logging(level: str = "INFO") -> None:
    """Setup logging configuration with timestamped log files."""
    from ocrbatch.misc import tz_now  # noqa: PLC0415 - lazy import for startup performance

    logs_dir = Path(".logs")
    logs_dir.mkdir(exist_ok=True)

    timestamp = tz_now().strftime("%Y-%m-%d_%H-%M-%S")
    log_filename = logs_dir / f"{timestamp}_ocrbatch.log"

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler(log_filename, encoding="utf-8")],
    )


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    return _execute_command(args, logger)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Batch OCR - Recognize text in long PDF documents with bounded, failure-isolated batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent(
            """
            Examples:
              # Basic usage (batches of 10 pages, 4 batches at a time)
              python main.py document.pdf

              # Larger batches, fewer concurrent batches
              python main.py document.pdf -b 20 -c 2

              # Every PDF in a directory, one output folder per file
              python main.py scans/ -o results/

              # Settings from a YAML file, English only, no pre-processing
              python main.py document.pdf --config settings.yaml --languages eng --no-preprocess
            """
        ),
    )

    parser.add_argument("input", type=str, help="PDF file or directory containing PDF files")
    parser.add_argument("--output", "-o", type=str, help="Output directory path (default: ./output)")
    parser.add_argument("--config", type=str, help="YAML configuration file")
    parser.add_argument("--temp-dir", type=str, help="Temporary files directory path (default: ./.tmp)")

    batch_group = parser.add_argument_group("Batching Options")
    batch_group.add_argument("--batch-size", "-b", type=int, help="Pages per batch (default: 10)")
    batch_group.add_argument("--concurrent", "-c", type=int, help="Batches processed at the same time (default: 4)")
    batch_group.add_argument(
        "--recognition-concurrency",
        type=int,
        help="Recognition workers inside one batch (default: 2)",
    )

    recognition_group = parser.add_argument_group("Recognition Options")
    recognition_group.add_argument("--dpi", type=int, help="Rendering resolution (default: 300)")
    recognition_group.add_argument(
        "--languages",
        type=str,
        help="Tesseract languages joined with '+' (default: chi_sim+chi_tra)",
    )
    recognition_group.add_argument("--no-preprocess", action="store_true", help="Skip image pre-processing")

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--print-report", action="store_true", help="Print the report table when done")

    return parser


def _execute_command(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        # Lazy import: only load the scheduler when actually processing input
        from ocrbatch import SchedulerConfig, create_default_scheduler  # noqa: PLC0415
        from ocrbatch.exceptions import ConfigurationError  # noqa: PLC0415

        try:
            base = SchedulerConfig.from_yaml(Path(args.config)) if args.config else None
            config = SchedulerConfig.from_cli(args, base=base)
            scheduler = create_default_scheduler(config)
        except ConfigurationError as exc:
            logger.error("Configuration error: %s", exc)
            return 1

        return _run_scheduler(scheduler, Path(args.input), args, logger)
    except KeyboardInterrupt:
        logger.info("Process interrupted by user")
        return 1
    except Exception as exc:  # noqa: BLE001 - retain broad logging for CLI
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return 1


def _run_scheduler(scheduler: BatchScheduler, input_path: Path, args: argparse.Namespace, logger: logging.Logger) -> int:
    logger.info("Starting batch OCR")
    logger.info("Input: %s", input_path)
    logger.info("Output: %s", scheduler.config.output_dir)

    if input_path.is_file():
        if input_path.suffix.lower() != ".pdf":
            logger.error("Unsupported file format: %s", input_path.suffix)
            return 1
        result = scheduler.run(input_path.read_bytes(), name=input_path.name)
        return _report_result(result, args, logger)

    if input_path.is_dir():
        pdf_files = sorted(input_path.glob("*.pdf"))
        if not pdf_files:
            logger.error("No PDF files found in directory: %s", input_path)
            return 1
        logger.info("Found %d PDF files", len(pdf_files))
        results = scheduler.run_many((path.name, path.read_bytes()) for path in pdf_files)
        exit_codes = [_report_result(result, args, logger) for result in results]
        return max(exit_codes)

    logger.error("Input path does not exist: %s", input_path)
    return 1


def _report_result(result: RunResult, args: argparse.Namespace, logger: logging.Logger) -> int:
    if not result.success:
        logger.error("Processing failed for %s: %s", result.name, result.error)
        return 1

    if args.print_report and result.report is not None:
        from ocrbatch.report import print_report  # noqa: PLC0415

        print_report(result.report)

    for fmt, artifact in result.outputs.items():
        logger.info("Saved %s output: %s", fmt, artifact.locator)
    if result.report_path:
        logger.info("Report saved to: %s", result.report_path)
    if result.output_error:
        logger.warning("Some outputs were not written: %s", result.output_error)
    logger.info("Batch OCR completed for %s", result.name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
