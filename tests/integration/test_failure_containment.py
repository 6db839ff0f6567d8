"""Failure containment: page, batch and document level."""

from __future__ import annotations

import errno
import tempfile
from pathlib import Path

import pytest
from fakes import FakePageSource, RecognizerFactory, RecordingListener, RecordingSink

from ocrbatch.config import RunOptions
from ocrbatch.events import BatchCompleted, BatchStarted, RunStarted
from ocrbatch.exceptions import InvalidConfigError
from ocrbatch.scheduler import PAGE_NOT_RENDERED
from ocrbatch.types import BatchState, DocumentInfo

pytestmark = pytest.mark.integration


class TestBatchFailure:
    """A batch that fails as a unit does not affect the other batches."""

    def test_engine_start_failure(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        scheduler = make_scheduler(factory=RecognizerFactory(fail_initialize_calls=[2]), max_concurrent=1)

        result = scheduler.run(document)

        assert result.success
        assert len(result.page_results) == 23
        failed = [r for r in result.page_results if not r.success]
        assert [r.page_number for r in failed] == list(range(11, 21))
        assert len({r.error for r in failed}) == 1
        assert failed[0].error.startswith("[batch 2] EngineInitializationError")
        assert "engine unavailable" in failed[0].error
        assert result.report.success_rate == pytest.approx(13 / 23 * 100, abs=0.01)

        states = {e.batch.batch_number: e.state for e in recording_listener.of_type(BatchCompleted)}
        assert states == {
            1: BatchState.COMPLETED,
            2: BatchState.CONTAINED_FAILURE,
            3: BatchState.COMPLETED,
        }

    def test_render_failure(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(fail_render_starts=[21]))

        result = scheduler.run(document)

        failed = [r for r in result.page_results if not r.success]
        assert [r.page_number for r in failed] == [21, 22, 23]
        assert all(r.error == "[batch 3] RenderError: cannot render pages 21-23" for r in failed)
        assert sum(1 for r in result.page_results if r.success) == 20

    def test_batch_output_failure(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(sink=RecordingSink(fail_batches=[1]))

        result = scheduler.run(document)

        failed = [r for r in result.page_results if not r.success]
        assert [r.page_number for r in failed] == list(range(1, 11))
        assert "OutputError" in failed[0].error
        assert scheduler.fake_sink.final_emits == [list(range(1, 24))]

    def test_failed_batch_still_cleans_up(self, make_scheduler, document: bytes, scheduler_config):
        scheduler = make_scheduler(factory=RecognizerFactory(fail_initialize_calls=[1, 2, 3]))

        result = scheduler.run(document)

        assert not any(r.success for r in result.page_results)
        assert len(scheduler.fake_source.released) == 3
        assert list(scheduler_config.temp_dir.iterdir()) == []
        assert all(r.terminate_calls == 1 for r in scheduler.fake_factory.created)
        assert result.report.success_rate == 0.0

    def test_every_batch_counted_once(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(fail_render_starts=[1, 11]))

        result = scheduler.run(document)

        assert result.metrics.processed_pages == 23
        assert result.metrics.failed_pages == 20
        assert len(result.metrics.memory_samples) == 3

    def test_workspace_creation_failure(
        self, make_scheduler, document: bytes, recording_listener: RecordingListener, monkeypatch: pytest.MonkeyPatch
    ):
        real_mkdtemp = tempfile.mkdtemp

        def mkdtemp(prefix: str = "", **kwargs):
            if prefix.startswith("batch_0002"):
                raise OSError(errno.ENOSPC, "No space left on device")
            return real_mkdtemp(prefix=prefix, **kwargs)

        monkeypatch.setattr(tempfile, "mkdtemp", mkdtemp)
        scheduler = make_scheduler()

        result = scheduler.run(document)

        assert result.success
        assert len(result.page_results) == 23
        failed = [r for r in result.page_results if not r.success]
        assert [r.page_number for r in failed] == list(range(11, 21))
        assert failed[0].error.startswith("[batch 2] OSError")
        assert 11 not in [start for start, _, _ in scheduler.fake_source.render_calls]
        states = {e.batch.batch_number: e.state for e in recording_listener.of_type(BatchCompleted)}
        assert states[2] is BatchState.CONTAINED_FAILURE


class TestRetries:
    def test_retry_recovers_batch(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        source = FakePageSource(fail_render_starts=[11], fail_render_times=1)
        scheduler = make_scheduler(source, batch_retry_attempts=1)

        result = scheduler.run(document)

        assert all(r.success for r in result.page_results)
        attempts = [e.attempt for e in recording_listener.of_type(BatchStarted) if e.batch.batch_number == 2]
        assert attempts == [1, 2]
        assert len(recording_listener.of_type(BatchCompleted)) == 3
        assert result.metrics.processed_pages == 23

    def test_retries_exhausted(self, make_scheduler, document: bytes):
        source = FakePageSource(fail_render_starts=[11])
        scheduler = make_scheduler(source, batch_retry_attempts=2)

        result = scheduler.run(document)

        assert sum(1 for r in result.page_results if not r.success) == 10
        assert sum(1 for start, _, _ in source.render_calls if start == 11) == 3
        # Every attempt gets its own workspace and releases it
        assert len(source.released) == 5

    def test_retry_after_workspace_failure(self, make_scheduler, document: bytes, monkeypatch: pytest.MonkeyPatch):
        real_mkdtemp = tempfile.mkdtemp
        failures = []

        def mkdtemp(prefix: str = "", **kwargs):
            if prefix.startswith("batch_0003") and not failures:
                failures.append(prefix)
                raise OSError(errno.EACCES, "Permission denied")
            return real_mkdtemp(prefix=prefix, **kwargs)

        monkeypatch.setattr(tempfile, "mkdtemp", mkdtemp)
        scheduler = make_scheduler(batch_retry_attempts=1)

        result = scheduler.run(document)

        assert all(r.success for r in result.page_results)
        assert len(failures) == 1

    def test_no_retry_by_default(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        scheduler = make_scheduler(FakePageSource(fail_render_starts=[11], fail_render_times=1))

        result = scheduler.run(document)

        assert sum(1 for r in result.page_results if not r.success) == 10
        assert all(e.attempt == 1 for e in recording_listener.of_type(BatchStarted))


class TestPageFailure:
    def test_recognition_failure_fails_only_that_page(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(factory=RecognizerFactory(fail_pages=[5, 17]))

        result = scheduler.run(document)

        failed = {r.page_number: r.error for r in result.page_results if not r.success}
        assert set(failed) == {5, 17}
        assert "unreadable page 5" in failed[5]

    def test_unrendered_page(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(missing_pages=[12]))

        result = scheduler.run(document)

        page_12 = result.page_results[11]
        assert page_12.page_number == 12
        assert not page_12.success
        assert page_12.error == PAGE_NOT_RENDERED
        assert sum(1 for r in result.page_results if r.success) == 22

    def test_pages_outside_batch_ignored(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(extra_pages=[99]))

        result = scheduler.run(document)

        assert [r.page_number for r in result.page_results] == list(range(1, 24))
        assert all(r.success for r in result.page_results)


class TestFatalFailure:
    """Only an unreadable document or an unusable output sink stops a run."""

    def test_open_failure(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        scheduler = make_scheduler(FakePageSource(fail_open=True))

        result = scheduler.run(document, name="broken.pdf")

        assert not result.success
        assert "not a PDF" in result.error
        assert result.name == "broken.pdf"
        assert result.page_results == []
        assert scheduler.fake_factory.created == []
        assert recording_listener.events == []

    def test_zero_pages(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(total_pages=0))

        result = scheduler.run(document)

        assert not result.success
        assert "no pages" in result.error
        assert scheduler.fake_source.render_calls == []

    def test_unexpected_open_error(self, make_scheduler, document: bytes):
        class Exploding(FakePageSource):
            def open(self, data: bytes) -> DocumentInfo:
                raise RuntimeError("codec crashed")

        result = make_scheduler(Exploding()).run(document)

        assert not result.success
        assert "codec crashed" in result.error

    def test_output_sink_cannot_be_created(
        self, make_scheduler, document: bytes, recording_listener: RecordingListener
    ):
        def unwritable(output_dir: Path):
            raise PermissionError("output dir not writable")

        scheduler = make_scheduler()
        scheduler.output_sink_factory = unwritable

        result = scheduler.run(document)

        assert not result.success
        assert "output dir not writable" in result.error
        assert result.page_results == []
        assert scheduler.fake_source.render_calls == []
        assert scheduler.fake_source.close_calls == 1
        assert recording_listener.events == []

    def test_invalid_options_rejected_before_open(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        with pytest.raises(InvalidConfigError, match="batch_size"):
            scheduler.run(document, RunOptions(batch_size=0))

        assert scheduler.fake_source.open_calls == 0


class TestOutputFailure:
    def test_final_output_failure(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(sink=RecordingSink(fail_final=True))

        result = scheduler.run(document)

        assert result.success
        assert result.output_error == "disk full"
        assert result.outputs == {}
        assert all(r.success for r in result.page_results)
        assert result.report_path is not None

    def test_report_write_failure(self, make_scheduler, document: bytes, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file", encoding="utf-8")
        scheduler = make_scheduler(output_dir=blocker)

        result = scheduler.run(document)

        assert result.success
        assert result.report_path is None
        assert "Failed to save report" in result.output_error
        assert result.report is not None


class TestRunMany:
    """Several documents in one call."""

    def test_documents_are_isolated(self, make_scheduler, scheduler_config):
        class PickySource(FakePageSource):
            def open(self, data: bytes) -> DocumentInfo:
                if data == b"broken":
                    raise ValueError("cannot parse")
                return super().open(data)

        scheduler = make_scheduler(PickySource(total_pages=5))

        results = scheduler.run_many({"a.pdf": b"%PDF a", "b.pdf": b"broken", "c.pdf": b"%PDF c"})

        assert [r.name for r in results] == ["a.pdf", "b.pdf", "c.pdf"]
        assert [r.success for r in results] == [True, False, True]
        assert "cannot parse" in results[1].error
        assert len(results[2].page_results) == 5
        assert (scheduler_config.output_dir / "a" / "performance-report.json").exists()
        assert (scheduler_config.output_dir / "c" / "performance-report.json").exists()

    def test_accepts_pairs(self, make_scheduler):
        scheduler = make_scheduler(FakePageSource(total_pages=2))

        results = scheduler.run_many([("x.pdf", b"1"), ("y.pdf", b"2")])

        assert [r.success for r in results] == [True, True]
        assert scheduler.fake_source.open_calls == 2

    def test_run_started_per_document(self, make_scheduler, recording_listener: RecordingListener):
        scheduler = make_scheduler(FakePageSource(total_pages=2))

        scheduler.run_many({"x.pdf": b"1", "y.pdf": b"2"})

        assert len(recording_listener.of_type(RunStarted)) == 2

    def test_invalid_options(self, make_scheduler):
        scheduler = make_scheduler()

        with pytest.raises(InvalidConfigError):
            scheduler.run_many({"x.pdf": b"1"}, RunOptions(max_concurrent=0))
