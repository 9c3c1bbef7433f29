"""Index lifecycle manager.

Drives a codebase through not_indexed -> indexing -> indexed | index_failed,
persisting each transition to the snapshot and refusing re-entrant runs.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Iterable, Protocol, Sequence

from .errors import (
    AlreadyIndexedError,
    CapacityError,
    ConcurrencyError,
    ConfigError,
    IndexingError,
    IndexNotFoundError,
    SnapshotError,
)
from .index_types import IndexRecord, IndexStats, IndexStatus, ProgressEvent
from .paths import normalize_path, resolve_codebase
from .snapshot import SnapshotStore

logger = logging.getLogger(__name__)

VALID_SPLITTERS = ("ast", "langchain")

ProgressCallback = Callable[[ProgressEvent], Any]


class IndexingPipeline(Protocol):
    def index_codebase(self, identity: str, force: bool = False) -> AsyncIterator[ProgressEvent]: ...

    def has_index(self, identity: str) -> bool: ...

    def add_custom_extensions(self, extensions: Iterable[str]) -> None: ...

    def add_custom_ignore_patterns(self, patterns: Iterable[str]) -> None: ...

    def set_splitter(self, splitter: str) -> None: ...

    def clear_index(self, identity: str) -> bool: ...

    async def search(
        self,
        identity: str,
        query: str,
        limit: int = 10,
        extension_filter: Sequence[str] | None = None,
    ) -> list[Any]: ...


class VectorBackend(Protocol):
    def check_collection_limit(self) -> bool: ...


class IndexLifecycleManager:
    """Per-codebase indexing state machine over a SnapshotStore.

    Example:
        ```python
        manager = IndexLifecycleManager(snapshot, indexer, store)
        stats = await manager.run_index("~/projects/app", on_progress=print)
        ```
    """

    def __init__(
        self,
        snapshot: SnapshotStore,
        pipeline: IndexingPipeline,
        backend: VectorBackend,
    ):
        self.snapshot = snapshot
        self.pipeline = pipeline
        self.backend = backend
        # Identities with a run in this process
        self._active: set[str] = set()

    async def run_index(
        self,
        path: str,
        *,
        force: bool = False,
        splitter: str = "ast",
        custom_extensions: Iterable[str] = (),
        ignore_patterns: Iterable[str] = (),
        on_progress: ProgressCallback | None = None,
    ) -> IndexStats:
        """Index a codebase and return the final stats.

        Raises:
            PathError: Path missing or not a directory
            ConfigError: Unknown splitter
            ConcurrencyError: Codebase is already indexing
            AlreadyIndexedError: Index exists and force is False
            CapacityError: No room for another collection
            SnapshotError: State could not be persisted
            Exception: Whatever the pipeline raised, after recording index_failed
        """
        identity = resolve_codebase(path)

        if splitter not in VALID_SPLITTERS:
            raise ConfigError(
                f"Invalid splitter {splitter!r}; choose one of {', '.join(VALID_SPLITTERS)}",
                context={"splitter": splitter},
            )

        if self.snapshot.get_status(identity) is IndexStatus.INDEXING:
            raise ConcurrencyError(
                f"Codebase '{identity}' is already being indexed",
                context={"path": identity},
            )

        has_index = self.pipeline.has_index(identity)
        if has_index and not force:
            raise AlreadyIndexedError(
                f"Codebase '{identity}' is already indexed. Use force to re-index.",
                context={"path": identity},
            )

        if not has_index and not self.backend.check_collection_limit():
            raise CapacityError(
                "Vector storage has reached its collection limit. Clear an existing index first.",
                context={"path": identity},
            )

        self.pipeline.add_custom_extensions(list(custom_extensions))
        self.pipeline.add_custom_ignore_patterns(list(ignore_patterns))
        self.pipeline.set_splitter(splitter)

        previous = self.snapshot.get_record(identity)
        self.snapshot.begin_indexing(identity, 0.0)
        try:
            self.snapshot.save()
        except SnapshotError:
            self.snapshot.restore(identity, previous)
            raise

        logger.info("Indexing %s (force=%s, splitter=%s)", identity, force, splitter)
        self._active.add(identity)
        last_progress = 0.0
        stats: IndexStats | None = None

        try:
            async with aclosing(self.pipeline.index_codebase(identity, force)) as events:
                async for event in events:
                    if event.percentage < last_progress:
                        logger.debug(
                            "Progress for %s went backwards (%.1f -> %.1f)",
                            identity, last_progress, event.percentage,
                        )
                    else:
                        last_progress = event.percentage
                    self.snapshot.update_progress(identity, last_progress)

                    if on_progress is not None:
                        result = on_progress(event)
                        if inspect.isawaitable(result):
                            await result

                    if event.stats is not None:
                        stats = event.stats

            if stats is None:
                raise IndexingError(
                    "Indexing pipeline finished without reporting stats",
                    context={"path": identity},
                )
        except asyncio.CancelledError:
            self._record_failure(identity, "Indexing cancelled", last_progress)
            raise
        except Exception as e:
            self._record_failure(identity, str(e) or type(e).__name__, last_progress)
            raise
        finally:
            self._active.discard(identity)

        self.snapshot.set_indexed(identity, stats)
        self.snapshot.save()
        logger.info(
            "Indexed %s: %d files, %d chunks",
            identity, stats.indexed_files, stats.total_chunks,
        )
        return stats

    def _record_failure(self, identity: str, message: str, last_progress: float) -> None:
        logger.error("Indexing %s failed at %.1f%%: %s", identity, last_progress, message)
        self.snapshot.set_index_failed(identity, message, last_progress)
        try:
            self.snapshot.save()
        except SnapshotError as e:
            # The pipeline error is what the caller needs to see
            logger.error("Could not persist failure state for %s: %s", identity, e)

    def get_record(self, path: str) -> tuple[str, IndexRecord | None]:
        """Identity and current record (None if never indexed)."""
        identity = normalize_path(path)
        return identity, self.snapshot.get_record(identity)

    def list_records(self) -> dict[str, IndexRecord]:
        return self.snapshot.list_records()

    def clear(self, path: str) -> bool:
        """Drop a codebase's index and snapshot record. Idempotent.

        Raises:
            ConcurrencyError: A run for this codebase is active in this process
        """
        identity = normalize_path(path)
        if identity in self._active:
            raise ConcurrencyError(
                f"Codebase '{identity}' is being indexed; wait for it to finish before clearing",
                context={"path": identity},
            )

        dropped = self.pipeline.clear_index(identity)
        removed = self.snapshot.clear(identity)
        if removed:
            self.snapshot.save()
        logger.info("Cleared %s (collection=%s, record=%s)", identity, dropped, removed)
        return dropped or removed

    async def search(
        self,
        path: str,
        query: str,
        limit: int = 10,
        extension_filter: Sequence[str] | None = None,
    ) -> list[Any]:
        """
        Raises:
            PathError: Path missing or not a directory
            IndexNotFoundError: Codebase has no index and is not indexing
        """
        identity = resolve_codebase(path)
        indexing = self.snapshot.get_status(identity) is IndexStatus.INDEXING
        if not self.pipeline.has_index(identity) and not indexing:
            raise IndexNotFoundError(
                f"Codebase '{identity}' is not indexed. Index it first.",
                context={"path": identity},
            )
        return await self.pipeline.search(identity, query, limit=limit, extension_filter=extension_filter)

    def is_indexing(self, path: str) -> bool:
        return self.snapshot.get_status(normalize_path(path)) is IndexStatus.INDEXING


__all__ = [
    "IndexLifecycleManager",
    "IndexingPipeline",
    "VectorBackend",
    "ProgressCallback",
    "VALID_SPLITTERS",
]
