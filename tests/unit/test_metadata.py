"""Unit tests for hybrid core/metadata entities."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest

from vaultline.exceptions import MetadataError, MetadataInconsistencyError
from vaultline.metadata import (
    InMemoryMetadataStore,
    JsonFileMetadataStore,
    NotificationPolicyCore,
    NotificationPolicyMetadata,
    Schedule,
    ScheduleCore,
    ScheduleMetadata,
    notification_policy_repository,
    schedule_repository,
)


class RecordingStore(InMemoryMetadataStore[ScheduleMetadata]):
    """In-memory store that records each upsert batch."""

    def __init__(self) -> None:
        super().__init__()
        self.batches: list[list[str]] = []

    def upsert_many(self, rows, *, only_missing: bool = False) -> None:
        self.batches.append([r.id for r in rows])
        super().upsert_many(rows, only_missing=only_missing)


class LosingStore(InMemoryMetadataStore[ScheduleMetadata]):
    """Store that silently drops writes."""

    def upsert_many(self, rows, *, only_missing: bool = False) -> None:
        return None


def _core(core_id: str) -> ScheduleCore:
    return ScheduleCore(id=core_id, pipeline_id="nightly", cron="0 3 * * *")


# ============================================================================
# attach_metadata
# ============================================================================


class TestAttachMetadata:
    """Tests for merging cores with their metadata."""

    def test_missing_rows_are_synthesized_in_one_batch(self) -> None:
        """Test 3 cores with 1 existing row: 2 defaults written together."""
        store = RecordingStore()
        store.upsert_many([ScheduleMetadata(id="b", active=True)])
        store.batches.clear()
        repo = schedule_repository(store)

        views = repo.attach_metadata([_core("a"), _core("b"), _core("c")])

        assert store.batches == [["a", "c"]]
        assert [v.id for v in views] == ["a", "b", "c"]
        assert [v.active for v in views] == [False, True, False]
        assert all(isinstance(v, Schedule) for v in views)
        assert [m.id for m in store.list_all()] == ["a", "b", "c"]

    def test_no_write_when_complete(self) -> None:
        """Test that nothing is written when every row exists."""
        store = RecordingStore()
        repo = schedule_repository(store)
        repo.attach_metadata([_core("a")])
        store.batches.clear()

        repo.attach_metadata([_core("a")])

        assert store.batches == []

    def test_view_merges_core_fields(self) -> None:
        """Test that the view carries both sides."""
        repo = schedule_repository(InMemoryMetadataStore())

        view = repo.attach_one(_core("a"))

        assert view.model_dump() == {
            "id": "a",
            "pipeline_id": "nightly",
            "cron": "0 3 * * *",
            "active": False,
        }

    def test_duplicate_cores(self) -> None:
        """Test that a repeated core yields one row and one view each."""
        store = RecordingStore()
        repo = schedule_repository(store)

        views = repo.attach_metadata([_core("a"), _core("a")])

        assert store.batches == [["a"]]
        assert len(views) == 2

    def test_empty_input(self) -> None:
        """Test that no cores means no work."""
        store = RecordingStore()

        assert schedule_repository(store).attach_metadata([]) == []
        assert store.batches == []

    def test_existing_row_is_not_clobbered(self) -> None:
        """Test that synthesis never overwrites a row written meanwhile."""
        store = InMemoryMetadataStore[ScheduleMetadata]()
        store.upsert_many([ScheduleMetadata(id="a", active=True)])

        store.upsert_many([ScheduleMetadata(id="a")], only_missing=True)

        assert store.query(["a"])[0].active is True

    def test_inconsistent_store(self) -> None:
        """Test that a row still missing after synthesis is fatal."""
        repo = schedule_repository(LosingStore())

        with pytest.raises(MetadataInconsistencyError, match="Missing metadata; id=a"):
            repo.attach_metadata([_core("a")])

    def test_concurrent_readers_agree(self) -> None:
        """Test that parallel attaches all see one row per core."""
        store = InMemoryMetadataStore[ScheduleMetadata]()
        repo = schedule_repository(store)
        cores = [_core(f"s{i}") for i in range(20)]
        results: list[list[Schedule]] = []

        def worker() -> None:
            results.append(repo.attach_metadata(cores))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 8
        assert len(store.list_all()) == 20
        assert all([v.id for v in r] == [c.id for c in cores] for r in results)

    def test_notification_policies_default_active(self) -> None:
        """Test that each entity type has its own default."""
        repo = notification_policy_repository(
            InMemoryMetadataStore[NotificationPolicyMetadata]()
        )

        view = repo.attach_one(
            NotificationPolicyCore(id="n1", channel="ops", event_subscriptions=["failed"])
        )

        assert view.active is True
        assert view.event_subscriptions == ["failed"]


# ============================================================================
# Other operations
# ============================================================================


class TestRepositoryOperations:
    """Tests for synchronize, set_active, get_metadata and delete."""

    def test_synchronize_removes_orphans(self) -> None:
        """Test that rows without a core are deleted."""
        store = InMemoryMetadataStore[ScheduleMetadata]()
        store.upsert_many([ScheduleMetadata(id="gone"), ScheduleMetadata(id="a", active=True)])
        repo = schedule_repository(store)

        views = repo.synchronize([_core("a"), _core("b")])

        assert [m.id for m in store.list_all()] == ["a", "b"]
        assert [v.active for v in views] == [True, False]

    def test_set_active(self) -> None:
        """Test toggling the flag, with or without an existing row."""
        store = InMemoryMetadataStore[ScheduleMetadata]()
        repo = schedule_repository(store)

        enabled = repo.set_active(_core("a"), True)

        assert enabled.active is True
        assert repo.get_metadata("a").active is True
        assert repo.set_active(_core("a"), False).active is False

    def test_get_metadata_missing(self) -> None:
        """Test that a missing row is a recoverable not_found."""
        repo = schedule_repository(InMemoryMetadataStore())

        with pytest.raises(MetadataError) as exc_info:
            repo.get_metadata("nope")

        assert exc_info.value.problem == "METADATA::not_found"

    def test_delete(self) -> None:
        """Test that delete drops the row."""
        store = InMemoryMetadataStore[ScheduleMetadata]()
        repo = schedule_repository(store)
        repo.attach_one(_core("a"))

        repo.delete("a")

        assert store.list_all() == []


# ============================================================================
# JSON file store
# ============================================================================


class TestJsonFileMetadataStore:
    """Tests for JsonFileMetadataStore."""

    def test_rows_persist(self, tmp_path: Path) -> None:
        """Test that rows survive a new store instance."""
        path = tmp_path / "metadata" / "schedules.json"
        repo = schedule_repository(JsonFileMetadataStore(path, ScheduleMetadata))
        repo.attach_metadata([_core("b"), _core("a")])
        repo.set_active(_core("b"), True)

        reopened = JsonFileMetadataStore(path, ScheduleMetadata)

        assert json.loads(path.read_text()) == {
            "a": {"id": "a", "active": False},
            "b": {"id": "b", "active": True},
        }
        assert [m.active for m in reopened.list_all()] == [False, True]
        assert reopened.query(["b", "zzz"]) == [ScheduleMetadata(id="b", active=True)]

    def test_only_missing_and_delete(self, tmp_path: Path) -> None:
        """Test only_missing upserts and deletes."""
        store = JsonFileMetadataStore(tmp_path / "t.json", ScheduleMetadata)
        store.upsert_many([ScheduleMetadata(id="a", active=True)])

        store.upsert_many([ScheduleMetadata(id="a"), ScheduleMetadata(id="b")], only_missing=True)
        store.delete_many(["b", "unknown"])

        assert store.list_all() == [ScheduleMetadata(id="a", active=True)]
