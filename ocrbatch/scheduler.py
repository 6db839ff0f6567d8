"""Batch scheduler: the orchestration core of a run.

A run opens the document, partitions its pages into batches and drives
every batch through the same pipeline inside a bounded number of slots:

    1. render the page range into a batch-private workspace
    2. pre-process each page image
    3. create and start a batch-private recognition engine
    4. recognize pages with the engine's worker pool
    5. emit the batch's results
    6. record metrics (and recycle the engine on threshold crossings)
    7. release the workspace
    8. terminate the engine

Anything raised in steps 1-5 fails the batch as a unit; its pages become
failed results sharing one reason and the run goes on. Only a document
that cannot be opened, or an output sink that cannot be created, stops a
run.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .batch import partition, run_bounded
from .config import RunOptions, SchedulerConfig
from .events import (
    BatchCompleted,
    BatchStarted,
    EventDispatcher,
    LoggingProgressListener,
    RunCompleted,
    RunStarted,
    StatusUpdate,
    ThresholdCrossed,
)
from .exceptions import BatchError, DocumentOpenError, EngineInitializationError, OutputError
from .metrics import MetricsCollector, crossed_multiple
from .misc import safe_ratio
from .recognition.engine import ManagedEngine
from .report import build_report, log_summary, save_report
from .resources import batch_workspace, managed_image_processing
from .types import Batch, BatchOutcome, BatchState, PageResult, RunResult

if TYPE_CHECKING:
    from .types import (
        DocumentMetadata,
        ImageTransform,
        OutputSink,
        PageImage,
        PageSource,
        ProgressListener,
        Recognizer,
    )

logger = logging.getLogger(__name__)

PAGE_NOT_RENDERED = "page was not rendered"


@dataclass
class _RunContext:
    """Per-run state shared by the batches of one run."""

    config: SchedulerConfig
    metadata: DocumentMetadata
    metrics: MetricsCollector
    events: EventDispatcher
    sink: OutputSink
    total_pages: int
    outcomes: list[BatchOutcome] = field(default_factory=list)


class BatchScheduler:
    """Runs long documents through render, transform, recognize and emit in batches.

    Collaborators are injected: a page source shared by all batches, a
    recognizer factory called once per batch (engines are never shared),
    an output sink factory called once per run with the output directory,
    and an optional image transform.

    Example:
        >>> scheduler = BatchScheduler(
        ...     SchedulerConfig(batch_size=10, max_concurrent=4),
        ...     page_source=PyMuPDFPageSource(dpi=300),
        ...     recognizer_factory=lambda: TesseractRecognizer(("eng",)),
        ...     output_sink_factory=lambda output_dir: FileOutputSink(output_dir),
        ...     transform=OpenCVImageTransform(),
        ... )
        >>> result = scheduler.run(Path("book.pdf").read_bytes())
        >>> result.report.success_rate
        100.0
    """

    def __init__(
        self,
        config: SchedulerConfig,
        page_source: PageSource,
        recognizer_factory: Callable[[], Recognizer],
        output_sink_factory: Callable[[Path], OutputSink],
        transform: ImageTransform | None = None,
        listeners: Sequence[ProgressListener] | None = None,
    ):
        self.config = config
        self.page_source = page_source
        self.recognizer_factory = recognizer_factory
        self.output_sink_factory = output_sink_factory
        self.transform = transform
        self.listeners = list(listeners) if listeners is not None else [LoggingProgressListener()]

    # ==================== Public API ====================

    def run(self, data: bytes, options: RunOptions | None = None, name: str | None = None) -> RunResult:
        """Process one document. Blocking wrapper around ``run_async``.

        Raises:
            InvalidConfigError: If the merged configuration is invalid
        """
        return asyncio.run(self.run_async(data, options, name=name))

    def run_many(
        self,
        documents: Mapping[str, bytes] | Iterable[tuple[str, bytes]],
        options: RunOptions | None = None,
    ) -> list[RunResult]:
        """Process several named documents one after another.

        Each document writes into its own ``<output_dir>/<name stem>``
        directory. A document that fails never affects the others.

        Raises:
            InvalidConfigError: If the merged configuration is invalid
        """
        return asyncio.run(self.run_many_async(documents, options))

    async def run_many_async(
        self,
        documents: Mapping[str, bytes] | Iterable[tuple[str, bytes]],
        options: RunOptions | None = None,
    ) -> list[RunResult]:
        base = self.config.with_options(options)
        items = list(documents.items()) if isinstance(documents, Mapping) else list(documents)

        results: list[RunResult] = []
        for index, (name, data) in enumerate(items, start=1):
            logger.info("Processing document %d/%d: %s", index, len(items), name)
            per_document = dataclasses.replace(
                options or RunOptions(), output_dir=base.output_dir / Path(name).stem
            )
            try:
                result = await self.run_async(data, per_document, name=name)
            except Exception as e:
                logger.exception("Document %s failed", name)
                result = RunResult.fatal(str(e))
                result.name = name
            results.append(result)

        succeeded = sum(1 for r in results if r.success)
        logger.info("Processed %d documents: %d succeeded, %d failed", len(results), succeeded, len(results) - succeeded)
        return results

    async def run_async(self, data: bytes, options: RunOptions | None = None, name: str | None = None) -> RunResult:
        """Process one document.

        Args:
            data: Raw document bytes
            options: Per-run overrides of the scheduler configuration
            name: Document name used in reports

        Returns:
            RunResult with one PageResult per page, or a fatal failure when
            the document cannot be opened or the output sink cannot be created

        Raises:
            InvalidConfigError: If the merged configuration is invalid
        """
        config = self.config.with_options(options)
        if config.preprocess and self.transform is None:
            logger.warning("Pre-processing is enabled but no image transform is configured")

        metrics = MetricsCollector()
        events = EventDispatcher(self.listeners)

        try:
            info = await asyncio.to_thread(self.page_source.open, data)
        except Exception as e:
            logger.error("Failed to open document %s: %s", name or "<bytes>", e)
            result = RunResult.fatal(str(e), metrics)
            result.name = name
            return result

        try:
            if info.total_pages <= 0:
                raise DocumentOpenError(f"Document has no pages (page count {info.total_pages})")

            sink = self._create_sink(config.output_dir)
            batches = partition(info.total_pages, config.batch_size)
            ctx = _RunContext(
                config=config,
                metadata=info.metadata,
                metrics=metrics,
                events=events,
                sink=sink,
                total_pages=info.total_pages,
            )

            metrics.start(info.total_pages)
            events.publish(
                RunStarted(
                    total_pages=info.total_pages,
                    batch_count=len(batches),
                    batch_size=config.batch_size,
                    metadata=info.metadata,
                )
            )
            await run_bounded(batches, lambda batch: self._run_batch(batch, ctx), config.max_concurrent)
            metrics.finish()
        except (DocumentOpenError, OutputError) as e:
            logger.error("Cannot process document %s: %s", name or "<bytes>", e)
            result = RunResult.fatal(str(e), metrics)
            result.name = name
            return result
        finally:
            self._close_source()

        return await self._finish(ctx, name)

    def _create_sink(self, output_dir: Path) -> OutputSink:
        try:
            return self.output_sink_factory(output_dir)
        except Exception as e:
            raise OutputError(f"Cannot create output sink for {output_dir}: {e}") from e

    # ==================== Per-batch pipeline ====================

    async def _run_batch(self, batch: Batch, ctx: _RunContext) -> BatchOutcome:
        max_attempts = ctx.config.batch_retry_attempts + 1
        for attempt in range(1, max_attempts + 1):
            ctx.events.publish(BatchStarted(batch=batch, attempt=attempt))
            outcome = await self._attempt_batch(batch, attempt, attempt == max_attempts, ctx)
            if outcome is not None:
                return outcome
        raise AssertionError("unreachable: the final attempt always resolves the batch")

    async def _attempt_batch(
        self, batch: Batch, attempt: int, final: bool, ctx: _RunContext
    ) -> BatchOutcome | None:
        """Run steps 1-8 once. Returns None when the attempt failed and will be retried."""
        engine: ManagedEngine | None = None
        try:
            with ExitStack() as cleanup:
                try:
                    # Creating the workspace is part of step 1
                    workspace = cleanup.enter_context(
                        batch_workspace(ctx.config.temp_dir, batch, self.page_source.release)
                    )
                    pages = await self._render(batch, workspace, ctx)
                    pages = await self._preprocess(pages, ctx)
                    engine = ManagedEngine(
                        self.recognizer_factory(),
                        concurrency=ctx.config.recognition_concurrency,
                        page_timeout=ctx.config.page_timeout,
                    )
                    await engine.initialize()
                    results = await self._recognize(engine, batch, pages, ctx)
                    await self._emit_batch(batch, results, ctx)
                except Exception as e:
                    if not final:
                        logger.warning("%s failed on attempt %d, retrying: %s", batch.label, attempt, e)
                        return None
                    outcome = self._contained_failure(batch, e, attempt)
                else:
                    outcome = BatchOutcome(
                        batch=batch, state=BatchState.COMPLETED, page_results=results, attempts=attempt
                    )
                await self._resolve(outcome, engine, ctx)
                return outcome
        finally:
            if engine is not None:
                await engine.terminate()

    async def _render(self, batch: Batch, workspace: Path, ctx: _RunContext) -> list[PageImage]:
        with ctx.metrics.measure("render"):
            pages = await asyncio.to_thread(self.page_source.render, batch.start_page, batch.end_page, workspace)

        in_range: dict[int, PageImage] = {}
        for page in pages:
            if page.page_number not in batch.page_numbers:
                logger.warning("Ignoring page %d rendered outside %s", page.page_number, batch.label)
            elif page.page_number in in_range:
                logger.warning("Ignoring duplicate render of page %d", page.page_number)
            else:
                in_range[page.page_number] = page
        return [in_range[n] for n in sorted(in_range)]

    async def _preprocess(self, pages: list[PageImage], ctx: _RunContext) -> list[PageImage]:
        if not ctx.config.preprocess or self.transform is None or not pages:
            return pages
        with ctx.metrics.measure("transform"):
            return await asyncio.to_thread(self._transform_pages, pages)

    def _transform_pages(self, pages: list[PageImage]) -> list[PageImage]:
        transformed: list[PageImage] = []
        with managed_image_processing():
            for page in pages:
                try:
                    image = self.transform.apply(page.image)  # type: ignore[union-attr]
                except Exception as e:  # noqa: BLE001 - fall back to the original image
                    logger.warning("Pre-processing failed for page %d, using original image: %s", page.page_number, e)
                    transformed.append(dataclasses.replace(page, transform_skipped=True))
                else:
                    transformed.append(dataclasses.replace(page, image=image))
        return transformed

    async def _recognize(
        self, engine: ManagedEngine, batch: Batch, pages: list[PageImage], ctx: _RunContext
    ) -> list[PageResult]:
        with ctx.metrics.measure("recognize"):
            results = await engine.recognize_pages(pages)

        recognized = {r.page_number for r in results}
        missing = [n for n in batch.page_numbers if n not in recognized]
        if missing:
            logger.warning("%s: %d pages were not rendered: %s", batch.label, len(missing), missing)
            results.extend(PageResult.failed(n, PAGE_NOT_RENDERED) for n in missing)
        return sorted(results, key=lambda r: r.page_number)

    async def _emit_batch(self, batch: Batch, results: list[PageResult], ctx: _RunContext) -> None:
        with ctx.metrics.measure("emit"):
            await asyncio.to_thread(ctx.sink.emit, results, ctx.metadata, batch)

    def _contained_failure(self, batch: Batch, error: Exception, attempts: int) -> BatchOutcome:
        reason = str(BatchError(batch.batch_number, f"{type(error).__name__}: {error}"))
        logger.error("%s failed as a unit after %d attempt(s): %s", batch.label, attempts, error, exc_info=error)
        return BatchOutcome(
            batch=batch,
            state=BatchState.CONTAINED_FAILURE,
            page_results=[PageResult.failed(n, reason) for n in batch.page_numbers],
            error=reason,
            attempts=attempts,
        )

    async def _resolve(self, outcome: BatchOutcome, engine: ManagedEngine | None, ctx: _RunContext) -> None:
        """Record a resolved batch in the metrics and apply the engine-lifecycle policy."""
        config = ctx.config
        before = ctx.metrics.record_batch(outcome.successful_pages, outcome.failed_pages)
        after = ctx.metrics.processed_pages
        ctx.outcomes.append(outcome)

        ctx.events.publish(
            BatchCompleted(
                batch=outcome.batch,
                state=outcome.state,
                successful_pages=outcome.successful_pages,
                failed_pages=outcome.failed_pages,
                error=outcome.error,
            )
        )

        if crossed_multiple(before, after, config.reinitialize_every):
            recycled = False
            if engine is not None and engine.is_ready:
                try:
                    await engine.reinitialize()
                    recycled = True
                except EngineInitializationError as e:
                    logger.error("Engine recycle failed for %s: %s", outcome.batch.label, e)
            ctx.events.publish(
                ThresholdCrossed(
                    processed_pages=after,
                    threshold=config.reinitialize_every,
                    batch=outcome.batch,
                    engine_recycled=recycled,
                )
            )

        if crossed_multiple(before, after, config.status_interval):
            ctx.events.publish(self._status(ctx))

    def _status(self, ctx: _RunContext) -> StatusUpdate:
        metrics = ctx.metrics
        pages_per_second = safe_ratio(metrics.processed_pages, metrics.elapsed)
        remaining = max(ctx.total_pages - metrics.processed_pages, 0)
        return StatusUpdate(
            processed_pages=metrics.processed_pages,
            total_pages=ctx.total_pages,
            success_rate=safe_ratio(metrics.successful_pages, metrics.processed_pages) * 100,
            pages_per_second=pages_per_second,
            eta_seconds=safe_ratio(remaining, pages_per_second),
            rss_bytes=metrics.memory_current().get("rss", 0),
        )

    # ==================== Run completion ====================

    async def _finish(self, ctx: _RunContext, name: str | None) -> RunResult:
        config = ctx.config
        page_results = sorted(
            (result for outcome in ctx.outcomes for result in outcome.page_results),
            key=lambda r: r.page_number,
        )

        output_error: str | None = None
        outputs = {}
        try:
            with ctx.metrics.measure("emit"):
                outputs = dict(await asyncio.to_thread(ctx.sink.emit, page_results, ctx.metadata, None))
        except Exception as e:
            logger.error("Failed to write final output: %s", e, exc_info=True)
            output_error = str(e)

        report = build_report(ctx.metrics, page_results, ctx.metadata, config, name=name)
        report_path: str | None = None
        try:
            report_path = str(save_report(report, config.output_dir, config.report_filename))
        except OutputError as e:
            logger.error("%s", e)
            output_error = f"{output_error}; {e}" if output_error else str(e)

        log_summary(report)
        ctx.events.publish(
            RunCompleted(
                total_pages=len(page_results),
                successful_pages=report.summary["successful_pages"],
                failed_pages=report.summary["failed_pages"],
                elapsed=ctx.metrics.elapsed,
            )
        )

        return RunResult(
            success=True,
            page_results=page_results,
            metrics=ctx.metrics,
            metadata=ctx.metadata,
            report=report,
            outputs=outputs,
            report_path=report_path,
            output_error=output_error,
            name=name,
        )

    def _close_source(self) -> None:
        try:
            self.page_source.close()
        except Exception as e:  # noqa: BLE001 - cleanup must not mask the run result
            logger.warning("Failed to close page source: %s", e)
