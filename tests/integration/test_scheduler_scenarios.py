"""End-to-end scheduler runs with fake collaborators."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from fakes import FakePageSource, FakeTransform, RecordingListener, RecordingSink

from ocrbatch.config import RunOptions
from ocrbatch.events import BatchCompleted, BatchStarted, RunCompleted, RunStarted, StatusUpdate
from ocrbatch.types import BatchState

pytestmark = pytest.mark.integration


class TestBasicRun:
    """A 23-page document in batches of 10."""

    def test_every_page_has_one_result(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        result = scheduler.run(document, name="book.pdf")

        assert result.success
        assert [r.page_number for r in result.page_results] == list(range(1, 24))
        assert all(r.success for r in result.page_results)
        assert result.page_results[22].text == "page 23"
        assert result.name == "book.pdf"

    def test_partition(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        scheduler.run(document)

        rendered = sorted((start, end) for start, end, _ in scheduler.fake_source.render_calls)
        assert rendered == [(1, 10), (11, 20), (21, 23)]

    def test_outputs(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        result = scheduler.run(document)

        sink: RecordingSink = scheduler.fake_sink
        assert sorted(sink.batch_emits) == [
            (1, list(range(1, 11))),
            (2, list(range(11, 21))),
            (3, [21, 22, 23]),
        ]
        assert sink.final_emits == [list(range(1, 24))]
        assert set(result.outputs) == {"json"}
        assert result.output_error is None

    def test_report(self, make_scheduler, document: bytes, scheduler_config):
        result = make_scheduler().run(document, name="book.pdf")

        report_path = Path(result.report_path)
        assert report_path == scheduler_config.output_dir / "performance-report.json"
        assert report_path.exists()
        assert result.report.success_rate == pytest.approx(100.0)
        assert result.report.summary["total_pages"] == 23
        assert result.report.file_info["batch_count"] == 3
        assert result.report.file_info["title"] == "fake document"
        assert result.metadata.title == "fake document"

    def test_one_memory_sample_per_batch(self, make_scheduler, document: bytes):
        result = make_scheduler().run(document)

        assert len(result.metrics.memory_samples) == 3
        assert result.metrics.processed_pages == 23
        assert result.metrics.end_time is not None

    def test_stage_timings(self, make_scheduler, document: bytes):
        result = make_scheduler().run(document)

        stages = {stage["name"]: stage for stage in result.report.performance["stage_timings"]}
        assert set(stages) == {"render", "transform", "recognize", "emit"}
        assert stages["render"]["calls"] == 3
        # Three batch emissions plus the final one
        assert stages["emit"]["calls"] == 4

    @pytest.mark.anyio
    async def test_run_async(self, make_scheduler, document: bytes):
        result = await make_scheduler().run_async(document)

        assert result.success
        assert len(result.page_results) == 23

    def test_single_short_batch(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(total_pages=3))

        result = scheduler.run(document)

        assert [r.page_number for r in result.page_results] == [1, 2, 3]
        assert len(scheduler.fake_factory.created) == 1


class TestResourceHandling:
    """Workspaces, page images and the document are released."""

    def test_workspaces_removed(self, make_scheduler, document: bytes, scheduler_config):
        make_scheduler().run(document)

        assert list(scheduler_config.temp_dir.iterdir()) == []

    def test_release_called_once_per_batch(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        scheduler.run(document)

        released = scheduler.fake_source.released
        assert len(released) == 3
        assert len(set(released)) == 3
        assert {ws for _, _, ws in scheduler.fake_source.render_calls} == set(released)

    def test_source_closed(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        scheduler.run(document)

        assert scheduler.fake_source.open_calls == 1
        assert scheduler.fake_source.close_calls == 1

    def test_source_closed_after_zero_pages(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(FakePageSource(total_pages=0))

        scheduler.run(document)

        assert scheduler.fake_source.close_calls == 1


class TestConcurrency:
    """Bounded batch concurrency."""

    def test_batches_in_flight_bounded(self, make_scheduler, document: bytes):
        class SlowSource(FakePageSource):
            def __init__(self) -> None:
                super().__init__(total_pages=60)
                self.active = 0
                self.peak = 0
                self._counter_lock = threading.Lock()

            def render(self, start_page, end_page, workspace):
                with self._counter_lock:
                    self.active += 1
                    self.peak = max(self.peak, self.active)
                time.sleep(0.05)
                with self._counter_lock:
                    self.active -= 1
                return super().render(start_page, end_page, workspace)

        source = SlowSource()
        scheduler = make_scheduler(source, max_concurrent=2)

        result = scheduler.run(document)

        assert len(result.page_results) == 60
        assert 1 <= source.peak <= 2

    def test_sequential_when_one_slot(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(max_concurrent=1)

        scheduler.run(document)

        starts = [start for start, _, _ in scheduler.fake_source.render_calls]
        assert starts == [1, 11, 21]

    def test_more_slots_than_batches(self, make_scheduler, document: bytes):
        result = make_scheduler(max_concurrent=16).run(document)

        assert len(result.page_results) == 23


class TestPreprocessing:
    def test_transform_failure_keeps_page(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(transform=FakeTransform(fail_pages=[5]))

        result = scheduler.run(document)

        page_5 = result.page_results[4]
        assert page_5.success
        assert page_5.transform_skipped
        assert page_5.text == "page 5"
        assert sum(1 for r in result.page_results if r.transform_skipped) == 1
        assert result.report.quality["transform_skipped_pages"] == 1

    def test_every_page_transformed(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        scheduler.run(document)

        assert sorted(scheduler.fake_transform.applied) == list(range(1, 24))

    def test_preprocess_disabled(self, make_scheduler, document: bytes):
        scheduler = make_scheduler(preprocess=False)

        result = scheduler.run(document)

        assert scheduler.fake_transform.applied == []
        assert all(r.success for r in result.page_results)

    def test_preprocess_disabled_per_run(self, make_scheduler, document: bytes):
        scheduler = make_scheduler()

        scheduler.run(document, RunOptions(preprocess=False))

        assert scheduler.fake_transform.applied == []


class TestProgressEvents:
    def test_event_sequence(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        make_scheduler(max_concurrent=1).run(document)

        kinds = [type(e).__name__ for e in recording_listener.events]
        assert kinds == [
            "RunStarted",
            "BatchStarted",
            "BatchCompleted",
            "BatchStarted",
            "BatchCompleted",
            "BatchStarted",
            "BatchCompleted",
            "RunCompleted",
        ]

    def test_event_payloads(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        make_scheduler().run(document)

        started = recording_listener.of_type(RunStarted)[0]
        assert (started.total_pages, started.batch_count, started.batch_size) == (23, 3, 10)
        assert sorted(e.batch.batch_number for e in recording_listener.of_type(BatchStarted)) == [1, 2, 3]
        assert all(e.state is BatchState.COMPLETED for e in recording_listener.of_type(BatchCompleted))
        completed = recording_listener.of_type(RunCompleted)[0]
        assert (completed.successful_pages, completed.failed_pages) == (23, 0)

    def test_status_updates(self, make_scheduler, document: bytes, recording_listener: RecordingListener):
        make_scheduler(max_concurrent=1, status_interval=10).run(document)

        updates = recording_listener.of_type(StatusUpdate)
        assert [u.processed_pages for u in updates] == [10, 20]
        assert updates[0].total_pages == 23
        assert updates[0].success_rate == pytest.approx(100.0)

    def test_failing_listener_does_not_break_run(self, make_scheduler, document: bytes):
        class Broken:
            def on_event(self, event):
                raise RuntimeError("listener bug")

        scheduler = make_scheduler()
        scheduler.listeners.insert(0, Broken())

        result = scheduler.run(document)

        assert result.success
        assert all(r.success for r in result.page_results)
