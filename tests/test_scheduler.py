"""
Tests for bounded-concurrency batch extraction.
"""

import asyncio
from typing import List, Tuple

import pytest

from spcc_import.models import ExtractionResult, ExtractionStatus, RawDocument
from spcc_import.pdf_processor.scheduler import BatchExtractionScheduler
from spcc_import.utils.concurrency import bounded_map


class FakeExtractor:
    """Extractor that records how many documents are in flight."""

    def __init__(self, fail_names=(), raise_names=()):
        self.fail_names = set(fail_names)
        self.raise_names = set(raise_names)
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract(self, document, config=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if document.name in self.raise_names:
                raise RuntimeError("extractor crashed")
            if document.name in self.fail_names:
                return ExtractionResult.failure(document, "PDF file is corrupted")
            return ExtractionResult(document=document, status=ExtractionStatus.OK, text=document.name)
        finally:
            self.in_flight -= 1


def make_documents(count: int) -> List[RawDocument]:
    return [RawDocument(name=f"doc-{i}.pdf", content=b"%PDF-1.7") for i in range(count)]


class TestBatchExtractionScheduler:
    """Test concurrency, progress and failure isolation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 3, 10])
    async def test_progress_reported_once_per_document(self, limit):
        documents = make_documents(7)
        scheduler = BatchExtractionScheduler(extractor=FakeExtractor(), concurrency_limit=limit)
        calls: List[Tuple[int, int]] = []

        results = await scheduler.run_batch(documents, on_progress=lambda done, total: calls.append((done, total)))

        assert len(results) == 7
        assert calls == [(i, 7) for i in range(1, 8)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [1, 2, 3])
    async def test_concurrency_limit_respected(self, limit):
        extractor = FakeExtractor()
        scheduler = BatchExtractionScheduler(extractor=extractor, concurrency_limit=limit)

        await scheduler.run_batch(make_documents(8))

        assert extractor.max_in_flight == limit

    @pytest.mark.asyncio
    async def test_per_call_limit_override(self):
        extractor = FakeExtractor()
        scheduler = BatchExtractionScheduler(extractor=extractor, concurrency_limit=3)

        await scheduler.run_batch(make_documents(6), concurrency_limit=1)

        assert extractor.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self):
        extractor = FakeExtractor(fail_names={"doc-1.pdf"}, raise_names={"doc-3.pdf"})
        scheduler = BatchExtractionScheduler(extractor=extractor)
        documents = make_documents(5)

        results = await scheduler.run_batch(documents)
        by_name = {result.document.name: result for result in results}

        assert len(results) == 5
        assert by_name["doc-1.pdf"].status == ExtractionStatus.ERROR
        assert by_name["doc-3.pdf"].status == ExtractionStatus.ERROR
        assert "extractor crashed" in by_name["doc-3.pdf"].error
        assert sorted(name for name, result in by_name.items() if result.ok) == ["doc-0.pdf", "doc-2.pdf", "doc-4.pdf"]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        calls = []
        scheduler = BatchExtractionScheduler(extractor=FakeExtractor())

        results = await scheduler.run_batch([], on_progress=lambda done, total: calls.append(done))

        assert results == []
        assert calls == []

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            BatchExtractionScheduler(extractor=FakeExtractor(), concurrency_limit=0)

    @pytest.mark.asyncio
    async def test_real_extractor_over_mixed_batch(self, pdf_factory):
        documents = [
            pdf_factory("a.pdf", ["Riverside Station"]),
            RawDocument(name="b.pdf", content=b"not a pdf"),
            pdf_factory("c.pdf", ["Lakeside Terminal"]),
        ]
        scheduler = BatchExtractionScheduler(concurrency_limit=2)

        results = await scheduler.run_batch(documents)
        statuses = {result.document.name: result.status for result in results}

        assert statuses == {
            "a.pdf": ExtractionStatus.OK,
            "b.pdf": ExtractionStatus.ERROR,
            "c.pdf": ExtractionStatus.OK,
        }


class TestBoundedMap:
    @pytest.mark.asyncio
    async def test_rejects_non_positive_limit(self):
        async def worker(item):
            return item

        with pytest.raises(ValueError):
            await bounded_map([1, 2], worker, 0)

    @pytest.mark.asyncio
    async def test_completion_order(self):
        async def worker(delay):
            await asyncio.sleep(delay)
            return delay

        results = await bounded_map([0.05, 0.0, 0.02], worker, 3)

        assert results == [0.0, 0.02, 0.05]
