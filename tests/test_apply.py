"""
Tests for the batch apply engine.
"""

from typing import List, Tuple
from unittest.mock import AsyncMock

import pytest

from spcc_import.apply import BatchApplyEngine
from spcc_import.models import ApplyStage, MatchConfidence, MatchResult, MatchStatus, RawDocument
from spcc_import.stores.base import EntityStore, ObjectStorage
from spcc_import.utils.errors import EntityUpdateError, StorageWriteError


def ready_row(name: str, entity_id: str = "fac-1", date: str = "03/04/25") -> MatchResult:
    document = RawDocument(name=name, content=b"%PDF-1.7 " + name.encode())
    return MatchResult(
        row_id=document.id,
        document=document,
        status=MatchStatus.MATCHED,
        selected_entity_id=entity_id,
        matched_entity_id=entity_id,
        confidence=MatchConfidence.EXACT,
        override_date=date,
    )


class RecordingStorage(ObjectStorage):
    def __init__(self, fail_keys_containing: str = ""):
        self.fail_keys_containing = fail_keys_containing
        self.objects = {}

    async def put(self, key, content, content_type="application/pdf"):
        if self.fail_keys_containing and self.fail_keys_containing in key:
            raise StorageWriteError(key, "bucket unavailable")
        self.objects[key] = content
        return f"https://files.example.com/spcc-plans/{key}"


class RecordingEntityStore(EntityStore):
    def __init__(self, fail_entity: str = ""):
        self.fail_entity = fail_entity
        self.updates: List[Tuple[str, str, str]] = []

    async def list_candidates(self, tenant_id):
        return []

    async def update_plan(self, entity_id, plan_reference, plan_date):
        if entity_id == self.fail_entity:
            raise EntityUpdateError(entity_id, "record locked")
        self.updates.append((entity_id, plan_reference, plan_date))


class TestBatchApplyEngine:
    """Test sequential apply with partial failures."""

    @pytest.mark.asyncio
    async def test_all_rows_applied(self):
        storage = RecordingStorage()
        entities = RecordingEntityStore()
        engine = BatchApplyEngine(storage, entities, clock=lambda: 1700000000000)
        rows = [ready_row("a.pdf", "fac-1"), ready_row("b.pdf", "fac-2", "12/31/2024")]

        summary = await engine.apply(rows)

        assert summary.total == 2
        assert summary.succeeded == 2
        assert summary.failures == []
        assert sorted(storage.objects) == [
            "fac-1/spcc-plan-1700000000000.pdf",
            "fac-2/spcc-plan-1700000000001.pdf",
        ]
        assert entities.updates == [
            ("fac-1", "https://files.example.com/spcc-plans/fac-1/spcc-plan-1700000000000.pdf", "2025-03-04"),
            ("fac-2", "https://files.example.com/spcc-plans/fac-2/spcc-plan-1700000000001.pdf", "2024-12-31"),
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_skips_entity_update_and_continues(self):
        storage = RecordingStorage(fail_keys_containing="fac-2/")
        entities = RecordingEntityStore()
        engine = BatchApplyEngine(storage, entities)
        rows = [ready_row("a.pdf", "fac-1"), ready_row("b.pdf", "fac-2"), ready_row("c.pdf", "fac-3")]
        progress = []

        summary = await engine.apply(rows, on_progress=lambda done, total: progress.append((done, total)))

        assert len(summary.outcomes) == 3
        assert summary.succeeded == 2
        assert summary.failed == 1
        failure = summary.failures[0]
        assert failure.row_id == rows[1].row_id
        assert failure.failed_stage == ApplyStage.STORAGE
        assert failure.storage_reference is None
        assert [update[0] for update in entities.updates] == ["fac-1", "fac-3"]
        assert progress == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_entity_failure_after_upload_reports_orphan(self):
        storage = RecordingStorage()
        entities = RecordingEntityStore(fail_entity="fac-2")
        engine = BatchApplyEngine(storage, entities)

        summary = await engine.apply([ready_row("a.pdf", "fac-1"), ready_row("b.pdf", "fac-2")])

        assert summary.succeeded == 1
        failure = summary.failures[0]
        assert failure.failed_stage == ApplyStage.ENTITY_UPDATE
        assert failure.storage_reference.startswith("https://files.example.com/spcc-plans/fac-2/")
        assert "orphaned object" in failure.message
        assert summary.orphaned == [failure]
        assert summary.error_messages == [f"b.pdf: {failure.message}"]

    @pytest.mark.asyncio
    async def test_unexpected_adapter_exception_is_contained(self):
        storage = RecordingStorage()
        storage.put = AsyncMock(side_effect=ConnectionError("network down"))
        engine = BatchApplyEngine(storage, RecordingEntityStore())

        summary = await engine.apply([ready_row("a.pdf"), ready_row("b.pdf")])

        assert summary.failed == 2
        assert all(outcome.failed_stage == ApplyStage.STORAGE for outcome in summary.outcomes)
        assert "network down" in summary.outcomes[0].message

    @pytest.mark.asyncio
    async def test_non_ready_rows_fail_without_io(self):
        storage = RecordingStorage()
        entities = RecordingEntityStore()
        engine = BatchApplyEngine(storage, entities)
        no_date = ready_row("a.pdf", date="")

        summary = await engine.apply([no_date])

        assert summary.failed == 1
        assert summary.outcomes[0].failed_stage is None
        assert storage.objects == {}
        assert entities.updates == []

    @pytest.mark.asyncio
    async def test_extension_taken_from_file_name(self):
        storage = RecordingStorage()
        engine = BatchApplyEngine(storage, RecordingEntityStore(), clock=lambda: 5)

        await engine.apply([ready_row("scan.PDF")])

        assert list(storage.objects) == ["fac-1/spcc-plan-5.pdf"]
