"""Tests for FileOutputSink."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ocrbatch.conversion.output import FileOutputSink
from ocrbatch.exceptions import InvalidConfigError, OutputError
from ocrbatch.types import Batch, DocumentMetadata, PageResult

RESULTS = [
    PageResult(page_number=1, success=True, text="alpha", confidence=90.0, processing_time_ms=2.0),
    PageResult(page_number=2, success=True, text="beta", confidence=80.0, processing_time_ms=2.0),
    PageResult.failed(3, "unreadable"),
]
METADATA = DocumentMetadata(title="Scan")


class TestFinalEmission:
    """Tests for emit() without a batch."""

    def test_writes_every_format(self, tmp_path: Path):
        sink = FileOutputSink(tmp_path)

        artifacts = sink.emit(RESULTS, METADATA)

        assert set(artifacts) == {"txt", "json"}
        txt_path = Path(artifacts["txt"].locator)
        json_path = Path(artifacts["json"].locator)
        assert txt_path == tmp_path / "output.txt"
        assert "alpha" in txt_path.read_text(encoding="utf-8")
        payload = json.loads(json_path.read_text(encoding="utf-8"))
        assert payload["metadata"]["total_pages"] == 3
        assert artifacts["json"].byte_size == json_path.stat().st_size
        assert artifacts["txt"].page_count == 2

    def test_single_format(self, tmp_path: Path):
        artifacts = FileOutputSink(tmp_path, formats=("json",)).emit(RESULTS, METADATA)

        assert list(artifacts) == ["json"]
        assert not (tmp_path / "output.txt").exists()

    def test_creates_output_directory(self, tmp_path: Path):
        output_dir = tmp_path / "nested" / "out"

        FileOutputSink(output_dir, formats=("txt",)).emit(RESULTS, METADATA)

        assert (output_dir / "output.txt").exists()

    def test_write_failure_raises_output_error(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file", encoding="utf-8")

        with pytest.raises(OutputError, match="Failed to write"):
            FileOutputSink(blocker).emit(RESULTS, METADATA)


class TestBatchEmission:
    def test_writes_batch_scoped_file(self, tmp_path: Path):
        sink = FileOutputSink(tmp_path)

        artifacts = sink.emit(RESULTS, METADATA, batch=Batch(7, 61, 70))

        assert list(artifacts) == ["batch"]
        path = Path(artifacts["batch"].locator)
        assert path == tmp_path / "batches" / "batch_0007.json"
        assert json.loads(path.read_text(encoding="utf-8"))["batch"]["batch_number"] == 7
        assert not (tmp_path / "output.json").exists()

    def test_batches_do_not_share_files(self, tmp_path: Path):
        sink = FileOutputSink(tmp_path)

        sink.emit(RESULTS[:1], METADATA, batch=Batch(1, 1, 1))
        sink.emit(RESULTS[1:], METADATA, batch=Batch(2, 2, 3))

        assert sorted(p.name for p in (tmp_path / "batches").iterdir()) == ["batch_0001.json", "batch_0002.json"]


def test_rejects_unknown_format(tmp_path: Path):
    with pytest.raises(InvalidConfigError, match="pdf"):
        FileOutputSink(tmp_path, formats=("txt", "pdf"))
