"""Recognition engine lifecycle and the per-batch recognition pool.

``ManagedEngine`` wraps one ``Recognizer`` owned by exactly one batch. It
tracks the engine state so terminate is safe on every exit path, runs the
reinitialize cycle used to bound memory growth, and distributes a batch's
pages over a fixed number of recognition workers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING

from ocrbatch.batch.queue import run_workers
from ocrbatch.exceptions import EngineInitializationError
from ocrbatch.types import PageImage, PageResult, Recognition

if TYPE_CHECKING:
    from ocrbatch.types import Recognizer

logger = logging.getLogger(__name__)

__all__ = ["EngineState", "ManagedEngine"]


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"
    TERMINATED = "terminated"


class ManagedEngine:
    """Lifecycle wrapper around a batch-private recognizer.

    Blocking recognizer calls run in worker threads so a batch waiting on
    its engine never stalls other batches.

    Attributes:
        recognizer: The wrapped engine
        concurrency: Number of recognition workers for ``recognize_pages``
        page_timeout: Seconds allowed per page (None = unlimited)
        state: Current lifecycle state
        recycles: Number of completed reinitialize cycles

    Example:
        >>> engine = ManagedEngine(TesseractRecognizer(), concurrency=2)
        >>> try:
        ...     await engine.initialize()
        ...     results = await engine.recognize_pages(pages)
        ... finally:
        ...     await engine.terminate()
    """

    def __init__(self, recognizer: Recognizer, concurrency: int, page_timeout: float | None = None):
        if concurrency <= 0:
            raise ValueError(f"concurrency must be positive, got {concurrency}")
        self.recognizer = recognizer
        self.concurrency = concurrency
        self.page_timeout = page_timeout
        self.state = EngineState.UNINITIALIZED
        self.recycles = 0
        self._in_flight: set[asyncio.Task[Recognition]] = set()

    @property
    def name(self) -> str:
        return getattr(self.recognizer, "name", type(self.recognizer).__name__)

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    async def initialize(self) -> None:
        """Start the engine. No-op when it is already running.

        Raises:
            EngineInitializationError: If the recognizer fails to start
        """
        if self.state is EngineState.READY:
            return
        await self._start()

    async def terminate(self) -> None:
        """Stop the engine. Safe to call in any state, any number of times.

        Errors raised by the recognizer while stopping are logged, never
        propagated: terminate runs on cleanup paths.

        Recognitions that outlived their page timeout are awaited first, so
        the recognizer is never stopped while one of its calls still runs.
        """
        if self.state in (EngineState.UNINITIALIZED, EngineState.TERMINATED):
            self.state = EngineState.TERMINATED
            return
        await self._stop()

    async def reinitialize(self) -> None:
        """Run one terminate followed by one initialize.

        Safe on an engine that is already terminated; the recognizer's own
        terminate is idempotent.

        Raises:
            EngineInitializationError: If the restart fails
        """
        logger.info("Reinitializing engine %s", self.name)
        await self._stop()
        await self._start()
        self.recycles += 1

    async def _start(self) -> None:
        try:
            await asyncio.to_thread(self.recognizer.initialize)
        except Exception as e:
            self.state = EngineState.FAILED
            raise EngineInitializationError(f"Engine {self.name} failed to initialize: {e}") from e
        self.state = EngineState.READY
        logger.debug("Engine %s ready", self.name)

    async def _stop(self) -> None:
        await self._drain()
        try:
            await asyncio.to_thread(self.recognizer.terminate)
        except Exception as e:  # noqa: BLE001 - cleanup path
            logger.warning("Engine %s failed to terminate cleanly: %s", self.name, e)
        self.state = EngineState.TERMINATED
        logger.debug("Engine %s terminated", self.name)

    async def _drain(self) -> None:
        if not self._in_flight:
            return
        logger.warning(
            "Waiting for %d timed-out recognition(s) before stopping engine %s", len(self._in_flight), self.name
        )
        await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def recognize_pages(self, pages: Sequence[PageImage]) -> list[PageResult]:
        """Recognize all pages with the worker pool.

        A page whose recognition fails gets a failed PageResult; the other
        pages are unaffected.

        Args:
            pages: Page images of one batch

        Returns:
            One PageResult per page, sorted by page number

        Raises:
            EngineInitializationError: If the engine has to be started and fails
        """
        if not pages:
            return []
        await self.initialize()

        results = await run_workers(pages, self._recognize_page, self.concurrency)
        return sorted(results, key=lambda r: r.page_number)

    async def _recognize_page(self, page: PageImage) -> PageResult:
        # The worker thread cannot be interrupted; a timed-out call stays tracked until it returns
        call = asyncio.ensure_future(asyncio.to_thread(self.recognizer.recognize, page.image))
        self._in_flight.add(call)
        call.add_done_callback(self._in_flight.discard)
        try:
            if self.page_timeout is not None:
                recognition = await asyncio.wait_for(asyncio.shield(call), timeout=self.page_timeout)
            else:
                recognition = await call
        except TimeoutError:
            logger.error("Page %d recognition timed out after %.1fs", page.page_number, self.page_timeout)
            return PageResult.failed(page.page_number, f"Recognition timed out after {self.page_timeout}s")
        except Exception as e:  # noqa: BLE001 - page-level failure is data
            logger.error("Page %d recognition failed: %s", page.page_number, e)
            return PageResult.failed(page.page_number, f"Recognition error: {e}")

        logger.debug(
            "Page %d recognized: %d characters, confidence %.1f, %.0fms",
            page.page_number,
            len(recognition.text),
            recognition.average_confidence,
            recognition.processing_time_ms,
        )
        return PageResult.from_recognition(page, recognition)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, state={self.state.value}, recycles={self.recycles})"
