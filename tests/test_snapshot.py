"""Tests for the snapshot store."""

import json
from unittest.mock import MagicMock

import pytest

from codebase_context.core.errors import ConcurrencyError, SnapshotError
from codebase_context.core.index_types import IndexRecord, IndexStats, IndexStatus
from codebase_context.core.snapshot import FORMAT_VERSION, SnapshotStore


REPO = "/home/user/repo"


class TestSnapshotTransitions:
    """Tests for in-memory state transitions."""

    @pytest.fixture
    def store(self, tmp_path):
        return SnapshotStore(tmp_path / "snapshot.json")

    def test_unknown_is_not_indexed(self, store):
        assert store.get_status(REPO) is IndexStatus.NOT_INDEXED
        assert store.get_record(REPO) is None

    def test_set_indexing(self, store):
        store.set_indexing(REPO, 10)
        record = store.get_record(REPO)
        assert record.status is IndexStatus.INDEXING
        assert record.progress_percentage == 10

    def test_set_indexed_clears_error(self, store):
        """set_indexed records stats and clears the last error."""
        store.set_index_failed(REPO, "boom", 20)
        store.set_indexed(REPO, IndexStats(indexed_files=3, total_chunks=9))

        record = store.get_record(REPO)
        assert record.status is IndexStatus.INDEXED
        assert record.last_indexed_stats == IndexStats(3, 9)
        assert record.last_error is None

    def test_set_index_failed_keeps_stats(self, store):
        """A failed run keeps stats from the earlier success."""
        store.set_indexed(REPO, IndexStats(indexed_files=3, total_chunks=9))
        store.set_indexing(REPO)
        store.set_index_failed(REPO, "backend timeout", 37)

        record = store.get_record(REPO)
        assert record.status is IndexStatus.INDEX_FAILED
        assert record.last_error == "backend timeout"
        assert record.progress_percentage == 37
        assert record.last_indexed_stats == IndexStats(3, 9)

    def test_begin_indexing_refuses_active(self, store):
        store.begin_indexing(REPO)
        with pytest.raises(ConcurrencyError):
            store.begin_indexing(REPO)

    def test_begin_indexing_after_failure(self, store):
        store.set_index_failed(REPO, "boom", 5)
        record = store.begin_indexing(REPO)
        assert record.status is IndexStatus.INDEXING
        assert record.last_error is None

    def test_update_progress_only_when_indexing(self, store):
        store.set_indexed(REPO, IndexStats(1, 1))
        store.update_progress(REPO, 40)
        assert store.get_record(REPO).progress_percentage == 100

        store.set_indexing(REPO)
        store.update_progress(REPO, 40)
        assert store.get_record(REPO).progress_percentage == 40

    def test_progress_clamped(self, store):
        store.set_indexing(REPO, 150)
        assert store.get_record(REPO).progress_percentage == 100

    def test_clear_idempotent(self, store):
        store.set_indexing(REPO)
        assert store.clear(REPO) is True
        assert store.clear(REPO) is False
        assert REPO not in store

    def test_restore_previous(self, store):
        store.set_indexed(REPO, IndexStats(1, 2))
        previous = store.get_record(REPO)
        store.begin_indexing(REPO)
        store.restore(REPO, previous)
        assert store.get_record(REPO) is previous

        store.restore(REPO, None)
        assert len(store) == 0


class TestSnapshotPersistence:
    """Tests for load/save."""

    def test_round_trip(self, tmp_path):
        """Every record field survives save and load."""
        path = tmp_path / "snapshot.json"
        store = SnapshotStore(path)
        store.set_indexed("/a", IndexStats(indexed_files=42, total_chunks=210, status="limit_reached"))
        store.set_indexed("/b", IndexStats(1, 1))
        store.set_index_failed("/b", "backend timeout", 37.5)
        store.set_indexing("/c", 12)
        store.save()

        reloaded = SnapshotStore(path)
        assert reloaded.load() == 3
        assert reloaded.list_records() == store.list_records()

    def test_file_format(self, tmp_path):
        path = tmp_path / "snapshot.json"
        store = SnapshotStore(path)
        store.set_indexing("/a")
        store.save()

        data = json.loads(path.read_text())
        assert data["formatVersion"] == FORMAT_VERSION
        assert data["codebases"]["/a"]["status"] == "indexing"
        assert "lastUpdated" in data

    def test_missing_file_empty(self, tmp_path):
        store = SnapshotStore(tmp_path / "none.json")
        assert store.load() == 0

    def test_corrupt_file_empty(self, tmp_path):
        """Corrupt snapshot loads as empty instead of raising."""
        path = tmp_path / "snapshot.json"
        path.write_text("{not json")
        store = SnapshotStore(path)
        assert store.load() == 0
        assert len(store) == 0

    def test_unknown_version_empty(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"formatVersion": "v99", "codebases": {}}))
        assert SnapshotStore(path).load() == 0

    def test_malformed_entry_skipped(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({
            "formatVersion": "v2",
            "codebases": {
                "/good": IndexRecord(status=IndexStatus.INDEXING).to_dict(),
                "/bad": {"status": "exploded"},
            },
        }))
        store = SnapshotStore(path)
        assert store.load() == 1
        assert "/good" in store

    def test_legacy_format_migrated(self, tmp_path):
        """v1 lists of indexed and indexing paths become records."""
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({
            "indexedCodebases": ["/done"],
            "indexingCodebases": {"/running": 55},
            "lastUpdated": "2024-01-01T00:00:00+00:00",
        }))
        store = SnapshotStore(path)
        assert store.load() == 2
        assert store.get_status("/done") is IndexStatus.INDEXED
        assert store.get_record("/running").progress_percentage == 55

    def test_legacy_indexing_list(self, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"indexedCodebases": [], "indexingCodebases": ["/x"]}))
        store = SnapshotStore(path)
        store.load()
        assert store.get_status("/x") is IndexStatus.INDEXING

    @pytest.mark.parametrize(
        "payload",
        [
            {"indexedCodebases": 5},
            {"indexedCodebases": True, "indexingCodebases": 3},
            {"indexedCodebases": [], "indexingCodebases": [["/nested"], {"a": 1}]},
            {"indexingCodebases": "not-a-mapping"},
        ],
    )
    def test_corrupt_legacy_fields_empty(self, tmp_path, payload):
        """Wrong-typed legacy fields load as empty instead of raising."""
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(payload))
        store = SnapshotStore(path)
        assert store.load() == 0
        assert len(store) == 0

    def test_unreadable_location_empty(self, tmp_path):
        """A permission error while checking the file loads as empty."""
        store = SnapshotStore(tmp_path / "snapshot.json")
        store.set_indexing("/a")
        store.path = MagicMock()
        store.path.exists.side_effect = PermissionError("denied")

        assert store.load() == 0
        assert len(store) == 0

    def test_save_failure_raises(self, tmp_path):
        """Unwritable location raises SnapshotError and keeps memory state."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = SnapshotStore(blocker / "snapshot.json")
        store.set_indexing("/a")

        with pytest.raises(SnapshotError):
            store.save()
        assert store.get_status("/a") is IndexStatus.INDEXING

    def test_no_temp_files_left(self, tmp_path):
        store = SnapshotStore(tmp_path / "snapshot.json")
        store.set_indexing("/a")
        store.save()
        assert not list(tmp_path.glob("*.tmp"))
