"""Unit tests for the ingestion pipeline, run against the in-memory store."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from wikillm.errors import NotFoundError
from wikillm.ingestion.pipeline import BatchReport, FileOutcome, FileStatus, IngestionPipeline

NOW = datetime(2025, 6, 20, 12, 0, tzinfo=timezone.utc)

REPORT = """== Technique ==

Sagittal T1 and axial T2 sequences.

== Conclusion ==

No acute findings.
"""


def _write(base: Path, relative: str, content: str, modified: datetime | None = None) -> Path:
    path = base / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    stamp = (modified or NOW - timedelta(hours=1)).timestamp()
    os.utime(path, (stamp, stamp))
    return path


@pytest.fixture()
def pipeline(tmp_path, memory_store, fake_embedder) -> IngestionPipeline:
    return IngestionPipeline(
        memory_store,
        fake_embedder,
        base_path=tmp_path,
        extension=".txt",
        root="reports",
        default_institution="clinic",
        clock=lambda: NOW,
    )


class FailingEmbedder:
    def embed(self, text: str) -> list[float]:
        if "boom" in text:
            raise RuntimeError("embedding service down")
        return [1.0]


# ── process_file ────────────────────────────────────────────────────────


class TestProcessFile:
    def test_indexes_chunks_with_metadata(self, pipeline, tmp_path, memory_store, fake_embedder) -> None:
        path = _write(tmp_path, "reports/mri/2024/g287-jane-doe.txt", REPORT)

        outcome = pipeline.process_file(path)

        assert outcome.status is FileStatus.SUCCESS
        assert outcome.document_id == "reports:mri:2024:g287-jane-doe"
        assert outcome.collection == "reports"
        assert outcome.chunk_count == 2
        records = memory_store.collections["reports"]
        assert sorted(records) == ["reports:mri:2024:g287-jane-doe@1", "reports:mri:2024:g287-jane-doe@2"]
        first = records["reports:mri:2024:g287-jane-doe@1"]
        assert first["document"] == "Sagittal T1 and axial T2 sequences."
        assert first["metadata"]["tags"] == "technique"
        assert first["metadata"]["chunk_number"] == 1
        assert first["metadata"]["total_chunks"] == 2
        assert first["metadata"]["year"] == "2024"
        assert first["metadata"]["institution"] == "clinic"
        assert first["metadata"]["registration"] == "g287"
        assert first["metadata"]["processed_at"] == NOW.isoformat()
        assert records["reports:mri:2024:g287-jane-doe@2"]["metadata"]["tags"] == "conclusion"
        assert fake_embedder.texts == ["Sagittal T1 and axial T2 sequences.", "No acute findings."]

    def test_up_to_date_file_is_skipped(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/x.txt", REPORT)
        assert pipeline.process_file(path).status is FileStatus.SUCCESS

        second = pipeline.process_file(path)

        assert second.status is FileStatus.SKIPPED
        assert "up to date" in second.message
        assert len(memory_store.upsert_calls) == 1

    def test_touched_file_is_reindexed(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/x.txt", REPORT)
        pipeline.process_file(path)
        later = (NOW + timedelta(hours=1)).timestamp()
        os.utime(path, (later, later))

        assert pipeline.process_file(path).status is FileStatus.SUCCESS
        assert len(memory_store.upsert_calls) == 2

    def test_reindex_is_idempotent(self, tmp_path, memory_store, fake_embedder) -> None:
        path = _write(tmp_path, "reports/mri/medima/250620-ivan.txt", REPORT)
        clock = iter([NOW, NOW + timedelta(hours=2)])
        pipeline = IngestionPipeline(
            memory_store, fake_embedder, base_path=tmp_path, root="reports", clock=lambda: next(clock)
        )
        pipeline.process_file(path)
        before = {key: dict(value["metadata"]) for key, value in memory_store.collections["reports"].items()}
        later = (NOW + timedelta(hours=1)).timestamp()
        os.utime(path, (later, later))

        pipeline.process_file(path)
        after = {key: dict(value["metadata"]) for key, value in memory_store.collections["reports"].items()}

        assert sorted(before) == sorted(after)
        for key in before:
            assert before[key].pop("processed_at") != after[key].pop("processed_at")
            assert before[key] == after[key]

    def test_empty_file_is_skipped(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/empty.txt", "  \n\n ")
        outcome = pipeline.process_file(path)
        assert outcome.status is FileStatus.SKIPPED
        assert "no content" in outcome.message
        assert memory_store.upsert_calls == []

    def test_headings_only_file_is_skipped(self, pipeline, tmp_path) -> None:
        path = _write(tmp_path, "reports/mri/headings.txt", "== One ==\n\n== Two ==\n")
        outcome = pipeline.process_file(path)
        assert outcome.status is FileStatus.SKIPPED
        assert "No valid chunks" in outcome.message

    def test_errors_are_reported_not_raised(self, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/bad.txt", "boom")
        pipeline = IngestionPipeline(memory_store, FailingEmbedder(), base_path=tmp_path, root="reports")
        outcome = pipeline.process_file(path)
        assert outcome.status is FileStatus.ERROR
        assert "embedding service down" in outcome.message
        assert memory_store.upsert_calls == []

    def test_missing_file_is_an_error_outcome(self, pipeline, tmp_path) -> None:
        outcome = pipeline.process_file(tmp_path / "reports" / "ghost.txt")
        assert outcome.status is FileStatus.ERROR

    def test_explicit_collection(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/x.txt", "text")
        outcome = pipeline.process_file(path, "other")
        assert outcome.collection == "other"
        assert "reports:mri:x@1" in memory_store.collections["other"]

    def test_collection_check_can_be_skipped(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/x.txt", "text")
        pipeline.process_file(path, "reports", collection_checked=True)
        assert memory_store.create_calls == []

    def test_template_metadata(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/templates/brain.txt", "template body")
        pipeline.process_file(path)
        metadata = memory_store.collections["reports"]["reports:mri:templates:brain@1"]["metadata"]
        assert metadata["type"] == "template"
        assert "institution" not in metadata


# ── batches ─────────────────────────────────────────────────────────────


class TestProcessDirectory:
    def test_batch_continues_past_errors(self, tmp_path, memory_store) -> None:
        _write(tmp_path, "reports/mri/a.txt", "fine")
        _write(tmp_path, "reports/mri/b.txt", "boom")
        _write(tmp_path, "reports/mri/c.txt", "also fine")
        pipeline = IngestionPipeline(memory_store, FailingEmbedder(), base_path=tmp_path, root="reports")

        report = pipeline.process_directory(tmp_path / "reports" / "mri")

        assert isinstance(report, BatchReport)
        assert report.files_count == 3
        assert report.processed == 2
        assert report.errors == 1
        assert report.skipped == 0
        assert [Path(o.path).name for o in report.outcomes] == ["a.txt", "b.txt", "c.txt"]

    def test_collection_checked_once(self, pipeline, tmp_path, memory_store) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        _write(tmp_path, "reports/mri/2024/b.txt", "two")

        report = pipeline.process_directory(tmp_path / "reports")

        assert report.collection == "reports"
        assert memory_store.create_calls == ["reports"]
        assert report.processed == 2

    def test_failed_collection_check_retries_per_file(self, pipeline, tmp_path, memory_store, monkeypatch) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        _write(tmp_path, "reports/mri/b.txt", "two")
        calls: list[str] = []

        def refuse(name=None):
            calls.append(name)
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(memory_store, "get_or_create_collection", refuse)

        report = pipeline.process_directory(tmp_path / "reports")

        assert len(calls) == 3
        assert report.errors == 2

    def test_hidden_files_are_ignored(self, pipeline, tmp_path) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        _write(tmp_path, "reports/mri/_draft.txt", "draft")
        _write(tmp_path, "reports/mri/notes.md", "markdown")

        report = pipeline.process_directory(tmp_path / "reports")

        assert [Path(o.path).name for o in report.outcomes] == ["a.txt"]

    def test_empty_directory(self, pipeline, tmp_path, memory_store) -> None:
        (tmp_path / "reports").mkdir()
        report = pipeline.process_directory(tmp_path / "reports")
        assert report.files_count == 0
        assert memory_store.create_calls == []

    def test_missing_directory(self, pipeline, tmp_path) -> None:
        with pytest.raises(NotFoundError):
            pipeline.process_directory(tmp_path / "nope")

    def test_second_run_skips_everything(self, pipeline, tmp_path) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        _write(tmp_path, "reports/mri/b.txt", "two")
        pipeline.process_directory(tmp_path / "reports")

        report = pipeline.process_directory(tmp_path / "reports")

        assert report.skipped == 2
        assert report.processed == 0


# ── process_path / process_page ─────────────────────────────────────────


class TestEntryPoints:
    def test_process_path_file(self, pipeline, tmp_path) -> None:
        path = _write(tmp_path, "reports/mri/a.txt", "one")
        report = pipeline.process_path(path)
        assert report.files_count == 1
        assert report.collection == "reports"
        assert report.processed == 1

    def test_process_path_directory(self, pipeline, tmp_path) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        assert pipeline.process_path(tmp_path / "reports").processed == 1

    def test_process_path_hidden_file(self, pipeline, tmp_path, memory_store) -> None:
        path = _write(tmp_path, "reports/mri/_hidden.txt", "one")
        report = pipeline.process_path(path)
        assert report.skipped == 1
        assert "underscore" in report.outcomes[0].message
        assert memory_store.upsert_calls == []

    def test_process_path_missing(self, pipeline, tmp_path) -> None:
        with pytest.raises(NotFoundError):
            pipeline.process_path(tmp_path / "missing.txt")

    def test_process_page(self, pipeline, tmp_path) -> None:
        _write(tmp_path, "reports/mri/a.txt", "one")
        outcome = pipeline.process_page("reports:mri:a")
        assert isinstance(outcome, FileOutcome)
        assert outcome.status is FileStatus.SUCCESS
        assert outcome.document_id == "reports:mri:a"

    @pytest.mark.parametrize("page_id", ["reports:mri:ghost", "..:secret", ""])
    def test_process_page_missing(self, pipeline, page_id: str) -> None:
        with pytest.raises(NotFoundError):
            pipeline.process_page(page_id)
