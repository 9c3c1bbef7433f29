"""Local numpy-backed vector storage, one directory per codebase."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import numpy as np

from .embedding_types import EmbeddingVector
from .errors import IndexingError
from .vector_types import CodeChunk, SearchResult

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = "code_chunks_"
STAGING_SUFFIX = ".staging"


def collection_name(identity: str) -> str:
    """Collection name derived from a normalized codebase path."""
    return COLLECTION_PREFIX + hashlib.md5(identity.encode()).hexdigest()[:8]


def _atomic_replace(target: Path, write) -> None:
    """Write via ``write(fileobj)`` to a temp file, then rename over target."""
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb", dir=target.parent, suffix=".tmp", delete=False
        ) as f:
            temp_path = Path(f.name)
            write(f)
            f.flush()
            os.fsync(f.fileno())
        temp_path.replace(target)
    except OSError:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()
        raise


def _read_meta(path: Path) -> dict | None:
    meta_path = path / "meta.json"
    if not meta_path.exists():
        return None
    try:
        return json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Corrupt collection metadata at %s: %s", meta_path, e)
        return None


class LocalVectorStore:
    """Collections of chunk vectors stored as ``vectors.npy`` + ``chunks.json``.

    Layout per collection::

        <index_dir>/code_chunks_<hash>/
            meta.json     identity, dimension, splitter, created_at
            chunks.json   chunk metadata, row-aligned with vectors
            vectors.npy   float32 matrix (n_chunks, dimension)

    A build happens in ``code_chunks_<hash>.staging/``: rows added with
    ``add`` are buffered, and ``commit`` writes them and swaps the staging
    directory in. Until then the previous collection (if any) is untouched
    and ``has_collection`` is unaffected by the build.
    """

    def __init__(self, index_dir: Path, max_collections: int = 50):
        self.index_dir = Path(index_dir)
        self.max_collections = max_collections
        self._pending: dict[str, tuple[list[CodeChunk], list[np.ndarray]]] = {}
        self._lock = threading.Lock()

    def collection_path(self, identity: str) -> Path:
        return self.index_dir / collection_name(identity)

    def staging_path(self, identity: str) -> Path:
        return self.index_dir / (collection_name(identity) + STAGING_SUFFIX)

    def has_collection(self, identity: str) -> bool:
        """True once a build for this codebase has been committed."""
        return (self.collection_path(identity) / "meta.json").exists()

    def list_collections(self) -> list[str]:
        if not self.index_dir.exists():
            return []
        return sorted(
            child.name
            for child in self.index_dir.iterdir()
            if child.is_dir()
            and child.name.startswith(COLLECTION_PREFIX)
            and not child.name.endswith(STAGING_SUFFIX)
        )

    def check_collection_limit(self) -> bool:
        """True if another collection can be created."""
        return len(self.list_collections()) < self.max_collections

    def create_collection(self, identity: str, dimension: int, splitter: str = "ast") -> Path:
        """Start a fresh build for a codebase, discarding any unfinished one.

        Returns the staging directory. The committed collection is replaced
        only by ``commit``.
        """
        self.discard_staging(identity)
        staging = self.staging_path(identity)
        staging.mkdir(parents=True, exist_ok=True)

        meta = {
            "identity": identity,
            "dimension": dimension,
            "splitter": splitter,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        (staging / "meta.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
        with self._lock:
            self._pending[identity] = ([], [])
        logger.debug("Started build %s for %s (dim=%d)", staging.name, identity, dimension)
        return staging

    def discard_staging(self, identity: str) -> bool:
        """Drop an unfinished build. The committed collection is kept."""
        with self._lock:
            self._pending.pop(identity, None)
        staging = self.staging_path(identity)
        if not staging.exists():
            return False
        shutil.rmtree(staging)
        logger.debug("Discarded unfinished build %s", staging.name)
        return True

    def drop_collection(self, identity: str) -> bool:
        """Remove the committed collection and any unfinished build."""
        self.discard_staging(identity)
        path = self.collection_path(identity)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.debug("Dropped collection %s", path.name)
        return True

    def add(self, identity: str, chunks: Sequence[CodeChunk], vectors: Sequence[EmbeddingVector]) -> None:
        """Buffer rows for the build in progress.

        Raises:
            IndexingError: No build started, length mismatch, or wrong dimension
        """
        if len(chunks) != len(vectors):
            raise IndexingError(f"Got {len(vectors)} vectors for {len(chunks)} chunks")

        meta = _read_meta(self.staging_path(identity))
        if meta is None:
            raise IndexingError(f"No collection build for {identity}", context={"path": identity})

        dimension = meta["dimension"]
        for vector in vectors:
            if vector.dimension != dimension:
                raise IndexingError(
                    f"Vector dimension {vector.dimension} does not match collection dimension {dimension}",
                    context={"path": identity},
                )

        with self._lock:
            pending_chunks, pending_vectors = self._pending.setdefault(identity, ([], []))
            pending_chunks.extend(chunks)
            pending_vectors.extend(np.asarray(v.values, dtype=np.float32) for v in vectors)

    def commit(self, identity: str) -> int:
        """Write the build and make it the collection. Returns the rows stored."""
        staging = self.staging_path(identity)
        meta = _read_meta(staging)
        if meta is None:
            raise IndexingError(f"No collection build for {identity}", context={"path": identity})

        with self._lock:
            chunks, vectors = self._pending.pop(identity, ([], []))

        if vectors:
            matrix = np.vstack(vectors)
        else:
            matrix = np.zeros((0, meta["dimension"]), dtype=np.float32)

        path = self.collection_path(identity)
        retired = self.index_dir / (path.name + ".old")
        try:
            _atomic_replace(staging / "vectors.npy", lambda f: np.save(f, matrix))
            payload = json.dumps([c.to_dict() for c in chunks]).encode("utf-8")
            _atomic_replace(staging / "chunks.json", lambda f: f.write(payload))

            if retired.exists():
                shutil.rmtree(retired)
            if path.exists():
                path.rename(retired)
            staging.rename(path)
            if retired.exists():
                shutil.rmtree(retired)
        except OSError as e:
            raise IndexingError(f"Failed to write collection {path.name}: {e}") from e

        logger.debug("Committed %d rows to %s", len(chunks), path.name)
        return len(chunks)

    def count(self, identity: str) -> int:
        chunks_path = self.collection_path(identity) / "chunks.json"
        if not chunks_path.exists():
            return 0
        return len(json.loads(chunks_path.read_text(encoding="utf-8")))

    def search(
        self,
        identity: str,
        query: EmbeddingVector,
        limit: int = 10,
        extension_filter: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Cosine-similarity search over a committed collection."""
        path = self.collection_path(identity)
        vectors_path = path / "vectors.npy"
        chunks_path = path / "chunks.json"
        if not vectors_path.exists() or not chunks_path.exists():
            return []

        matrix = np.load(vectors_path)
        chunks = [CodeChunk.from_dict(d) for d in json.loads(chunks_path.read_text(encoding="utf-8"))]
        if matrix.shape[0] == 0:
            return []

        q = np.asarray(query.values, dtype=np.float32)
        if q.shape[0] != matrix.shape[1]:
            raise IndexingError(
                f"Query dimension {q.shape[0]} does not match collection dimension {matrix.shape[1]}"
            )

        if extension_filter:
            allowed = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extension_filter}
            mask = np.array([c.file_extension in allowed for c in chunks], dtype=bool)
        else:
            mask = np.ones(len(chunks), dtype=bool)

        norms = np.linalg.norm(matrix, axis=1) * (np.linalg.norm(q) or 1.0)
        norms[norms == 0] = 1.0
        scores = (matrix @ q) / norms
        scores[~mask] = -np.inf

        order = np.argsort(-scores)[:limit]
        return [
            SearchResult(chunk=chunks[i], score=float(scores[i]))
            for i in order
            if mask[i]
        ]


__all__ = ["LocalVectorStore", "collection_name", "COLLECTION_PREFIX"]
