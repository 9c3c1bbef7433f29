"""Durable per-codebase index state.

The snapshot is a single JSON file mapping normalized codebase paths to their
IndexRecord. The store never saves on its own; callers decide when a
transition is persisted.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from .errors import ConcurrencyError, SnapshotError
from .index_types import IndexRecord, IndexStats, IndexStatus, utc_now

logger = logging.getLogger(__name__)

FORMAT_VERSION = "v2"


@contextmanager
def _file_lock(lock_path: Path, timeout: float = 10.0) -> Generator[None, None, None]:
    """Cross-process file lock using flock.

    Raises:
        TimeoutError: If lock cannot be acquired within timeout
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    start = time.time()
    lock_fd = None

    try:
        lock_fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT)

        while True:
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.time() - start > timeout:
                    raise TimeoutError(f"Could not acquire lock on {lock_path} within {timeout}s")
                time.sleep(0.1)

        yield
    finally:
        if lock_fd is not None:
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_UN)
            except OSError:
                pass
            os.close(lock_fd)


class SnapshotStore:
    """In-memory map of codebase identity -> IndexRecord, persisted as JSON.

    Example:
        ```python
        store = SnapshotStore(Path("~/.context/snapshot.json").expanduser())
        store.load()
        store.begin_indexing("/home/me/repo")
        store.save()
        ```
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._records: dict[str, IndexRecord] = {}
        self._lock = threading.RLock()

    @property
    def _lock_file(self) -> Path:
        return self.path.parent / ".snapshot.lock"

    # -- persistence -----------------------------------------------------

    def load(self) -> int:
        """Replace in-memory state with the snapshot file.

        Never raises: a missing, unreadable, corrupt or unrecognized file
        yields an empty store. Returns the number of records loaded.
        """
        with self._lock:
            self._records = {}

            try:
                if not self.path.exists():
                    logger.debug("No snapshot at %s, starting empty", self.path)
                    return 0
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                logger.warning("Failed to load snapshot %s: %s", self.path, e)
                return 0

            if not isinstance(data, dict):
                logger.warning("Ignoring snapshot %s: unrecognized format", self.path)
                return 0

            try:
                if data.get("formatVersion") == FORMAT_VERSION:
                    records = self._parse_v2(data.get("codebases"))
                elif "indexedCodebases" in data or "indexingCodebases" in data:
                    logger.info("Migrating legacy snapshot %s", self.path)
                    records = self._parse_v1(data)
                else:
                    logger.warning(
                        "Ignoring snapshot %s: unknown format version %r",
                        self.path, data.get("formatVersion"),
                    )
                    records = {}
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning("Ignoring corrupt snapshot %s: %s", self.path, e)
                return 0

            self._records = records
            logger.debug("Loaded %d codebase records from snapshot", len(self._records))
            return len(self._records)

    def _parse_v2(self, codebases: Any) -> dict[str, IndexRecord]:
        records: dict[str, IndexRecord] = {}
        if not isinstance(codebases, dict):
            return records
        for identity, raw in codebases.items():
            try:
                records[identity] = IndexRecord.from_dict(raw)
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed snapshot entry %s: %s", identity, e)
        return records

    def _parse_v1(self, data: dict[str, Any]) -> dict[str, IndexRecord]:
        """Legacy layout: a list of indexed paths plus in-flight paths."""
        records: dict[str, IndexRecord] = {}
        updated_at = str(data.get("lastUpdated") or utc_now())

        indexed = data.get("indexedCodebases")
        if isinstance(indexed, dict):
            indexed = list(indexed)
        if not isinstance(indexed, list):
            indexed = []
        for identity in indexed:
            if isinstance(identity, str):
                records[identity] = IndexRecord(
                    status=IndexStatus.INDEXED,
                    progress_percentage=100.0,
                    updated_at=updated_at,
                )

        indexing = data.get("indexingCodebases") or {}
        if isinstance(indexing, list):
            indexing = {identity: 0.0 for identity in indexing if isinstance(identity, str)}
        if isinstance(indexing, dict):
            for identity, progress in indexing.items():
                try:
                    percentage = min(max(float(progress), 0.0), 100.0)
                except (TypeError, ValueError):
                    percentage = 0.0
                records[identity] = IndexRecord(
                    status=IndexStatus.INDEXING,
                    progress_percentage=percentage,
                    updated_at=updated_at,
                )
        return records

    def save(self) -> None:
        """Atomically write the snapshot under a cross-process lock.

        Raises:
            SnapshotError: If the file cannot be written. In-memory state is kept.
        """
        with self._lock:
            data = {
                "formatVersion": FORMAT_VERSION,
                "codebases": {
                    identity: record.to_dict()
                    for identity, record in self._records.items()
                },
                "lastUpdated": utc_now(),
            }

            temp_path: Path | None = None
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with _file_lock(self._lock_file):
                    with tempfile.NamedTemporaryFile(
                        mode="w",
                        dir=self.path.parent,
                        suffix=".tmp",
                        delete=False,
                        encoding="utf-8",
                    ) as f:
                        temp_path = Path(f.name)
                        json.dump(data, f, indent=2)
                        f.flush()
                        os.fsync(f.fileno())

                    temp_path.replace(self.path)
            except (OSError, TimeoutError) as e:
                logger.error("Failed to save snapshot %s: %s", self.path, e)
                if temp_path is not None and temp_path.exists():
                    temp_path.unlink()
                raise SnapshotError(
                    f"Failed to save snapshot: {e}",
                    context={"path": str(self.path)},
                ) from e

    # -- queries ---------------------------------------------------------

    def get_record(self, identity: str) -> IndexRecord | None:
        with self._lock:
            return self._records.get(identity)

    def get_status(self, identity: str) -> IndexStatus:
        record = self.get_record(identity)
        return record.status if record else IndexStatus.NOT_INDEXED

    def list_records(self) -> dict[str, IndexRecord]:
        with self._lock:
            return dict(self._records)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # -- transitions -----------------------------------------------------

    def set_indexing(self, identity: str, initial_progress: float = 0.0) -> IndexRecord:
        """Mark a codebase as indexing. Earlier stats survive, the error is cleared."""
        with self._lock:
            previous = self._records.get(identity)
            record = IndexRecord(
                status=IndexStatus.INDEXING,
                progress_percentage=_clamp(initial_progress),
                last_indexed_stats=previous.last_indexed_stats if previous else None,
            )
            self._records[identity] = record
            return record

    def begin_indexing(self, identity: str, initial_progress: float = 0.0) -> IndexRecord:
        """Compare-and-set transition into indexing.

        Raises:
            ConcurrencyError: If the codebase is already indexing
        """
        with self._lock:
            if self.get_status(identity) is IndexStatus.INDEXING:
                raise ConcurrencyError(
                    f"Codebase '{identity}' is already being indexed",
                    context={"path": identity},
                )
            return self.set_indexing(identity, initial_progress)

    def update_progress(self, identity: str, percentage: float) -> None:
        """Record progress of an active run in memory only."""
        with self._lock:
            record = self._records.get(identity)
            if record is None or record.status is not IndexStatus.INDEXING:
                logger.debug("Ignoring progress for %s: not indexing", identity)
                return
            record.progress_percentage = _clamp(percentage)

    def set_indexed(self, identity: str, stats: IndexStats) -> IndexRecord:
        with self._lock:
            record = IndexRecord(
                status=IndexStatus.INDEXED,
                progress_percentage=100.0,
                last_indexed_stats=stats,
            )
            self._records[identity] = record
            return record

    def set_index_failed(self, identity: str, message: str, last_progress: float = 0.0) -> IndexRecord:
        """Record a failed run. Stats from an earlier success are kept."""
        with self._lock:
            previous = self._records.get(identity)
            record = IndexRecord(
                status=IndexStatus.INDEX_FAILED,
                progress_percentage=_clamp(last_progress),
                last_indexed_stats=previous.last_indexed_stats if previous else None,
                last_error=message,
            )
            self._records[identity] = record
            return record

    def restore(self, identity: str, record: IndexRecord | None) -> None:
        """Put back a previously read record (or remove the entry if None)."""
        with self._lock:
            if record is None:
                self._records.pop(identity, None)
            else:
                self._records[identity] = record

    def clear(self, identity: str) -> bool:
        """Remove a codebase's record. Returns True if one existed."""
        with self._lock:
            return self._records.pop(identity, None) is not None


def _clamp(percentage: float) -> float:
    return min(max(float(percentage), 0.0), 100.0)


__all__ = ["SnapshotStore", "FORMAT_VERSION"]
