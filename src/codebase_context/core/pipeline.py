"""Codebase indexing pipeline: discover files, chunk, embed, store.

``CodebaseIndexer.index_codebase`` is an async generator of ProgressEvents.
Closing it (or cancelling the task consuming it) stops the run at the next
await point and discards the unfinished build.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Sequence

import pathspec

from .config import ContextConfig
from .embeddings_base import EmbeddingProvider
from .errors import IndexingError
from .index_types import IndexStats, ProgressEvent
from .lifecycle import VALID_SPLITTERS
from .retry import retry_with_backoff
from .vector_store import LocalVectorStore
from .vector_types import CodeChunk, SearchResult, chunk_text

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = frozenset({
    # Programming languages
    ".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".cpp", ".c", ".h", ".hpp",
    ".cs", ".go", ".rs", ".php", ".rb", ".swift", ".kt", ".scala", ".m", ".mm",
    # Text and markup
    ".md", ".markdown", ".ipynb",
})

DEFAULT_IGNORE_PATTERNS = (
    # Build output and dependencies
    "node_modules/", "dist/", "build/", "out/", "target/", "coverage/", ".nyc_output/",
    # IDE and editor files
    ".vscode/", ".idea/", "*.swp", "*.swo",
    # Version control and caches
    ".git/", ".svn/", ".hg/", ".cache/", "__pycache__/", ".pytest_cache/",
    # Logs, temp and env
    "logs/", "tmp/", "temp/", "*.log", ".env", ".env.*", "*.local",
    # Minified and bundled
    "*.min.js", "*.min.css", "*.min.map", "*.bundle.js", "*.bundle.css", "*.chunk.js",
    "*.vendor.js", "*.polyfills.js", "*.runtime.js", "*.map",
)

# Pruned without consulting the ignore spec
SKIP_DIRS = frozenset({
    ".git", "__pycache__", "node_modules", ".venv", "venv", ".tox",
    ".mypy_cache", ".pytest_cache", ".ruff_cache",
})


def load_gitignore_patterns(root: Path) -> list[str]:
    """Patterns from the codebase's top-level .gitignore, if any."""
    gitignore_path = root / ".gitignore"
    if not gitignore_path.is_file():
        return []
    try:
        return gitignore_path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        logger.debug("Failed to read .gitignore: %s", gitignore_path)
        return []


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


class CodebaseIndexer:
    """Turns a codebase directory into a vector store collection.

    Example:
        ```python
        indexer = CodebaseIndexer(provider, LocalVectorStore(index_dir), config)
        async for event in indexer.index_codebase("/home/me/repo"):
            print(event.percentage, event.phase)
        ```
    """

    def __init__(
        self,
        embedding: EmbeddingProvider,
        store: LocalVectorStore,
        config: ContextConfig,
        retry_options: dict[str, Any] | None = None,
    ):
        self.embedding = embedding
        self.store = store
        self.config = config
        # Passed to retry_with_backoff (max_retries, base_delay, jitter, ...)
        self.retry_options = retry_options or {}
        self.splitter = "ast"
        self._custom_extensions: set[str] = set()
        self._custom_ignore_patterns: list[str] = []

    # -- configuration ---------------------------------------------------

    def add_custom_extensions(self, extensions: Iterable[str]) -> None:
        added = {_normalize_extension(e) for e in extensions if e.strip()}
        self._custom_extensions.update(added)
        if added:
            logger.debug("Added custom extensions: %s", sorted(added))

    def add_custom_ignore_patterns(self, patterns: Iterable[str]) -> None:
        added = [p for p in patterns if p.strip()]
        self._custom_ignore_patterns.extend(added)
        if added:
            logger.debug("Added custom ignore patterns: %s", added)

    def set_splitter(self, splitter: str) -> None:
        """Record the requested splitter. Chunking is line-based either way."""
        if splitter not in VALID_SPLITTERS:
            raise ValueError(f"Invalid splitter {splitter!r}; choose one of {', '.join(VALID_SPLITTERS)}")
        self.splitter = splitter

    @property
    def supported_extensions(self) -> frozenset[str]:
        return DEFAULT_EXTENSIONS | self._custom_extensions

    def _ignore_spec(self, root: Path) -> pathspec.PathSpec:
        patterns = [*DEFAULT_IGNORE_PATTERNS, *self._custom_ignore_patterns, *load_gitignore_patterns(root)]
        return pathspec.PathSpec.from_lines("gitignore", patterns)

    # -- index management ------------------------------------------------

    def has_index(self, identity: str) -> bool:
        return self.store.has_collection(identity)

    def clear_index(self, identity: str) -> bool:
        return self.store.drop_collection(identity)

    # -- discovery -------------------------------------------------------

    def discover_files(self, root: Path) -> list[Path]:
        """Collect indexable files under root, pruning ignored directories.

        Uses iterative traversal to avoid RecursionError on deep trees.
        """
        spec = self._ignore_spec(root)
        extensions = self.supported_extensions
        files: list[Path] = []
        dirs_to_process: deque[Path] = deque([root])

        while dirs_to_process:
            current = dirs_to_process.popleft()
            try:
                entries = list(os.scandir(current))
            except PermissionError:
                logger.debug("Permission denied: %s", current)
                continue

            for entry in entries:
                entry_path = Path(entry.path)
                rel = entry_path.relative_to(root).as_posix()

                if entry.is_dir(follow_symlinks=False):
                    if entry.name in SKIP_DIRS or spec.match_file(rel + "/"):
                        continue
                    dirs_to_process.append(entry_path)
                elif entry.is_file(follow_symlinks=False):
                    if entry_path.suffix.lower() not in extensions:
                        continue
                    if spec.match_file(rel):
                        continue
                    files.append(entry_path)

        return sorted(files)

    # -- indexing --------------------------------------------------------

    async def _embed_and_store(self, identity: str, chunks: Sequence[CodeChunk]) -> None:
        vectors = await retry_with_backoff(
            self.embedding.embed_batch,
            [c.to_document() for c in chunks],
            **self.retry_options,
        )
        self.store.add(identity, chunks, vectors)

    async def index_codebase(self, identity: str, force: bool = False) -> AsyncIterator[ProgressEvent]:
        """Index a codebase, yielding progress from 0 to 100.

        Only the final event carries stats. The new collection replaces any
        existing one only once the run completes; a run that fails or is
        closed early discards its partial build and leaves the previous
        collection (or the absence of one) in place.
        """
        root = Path(identity)
        yield ProgressEvent(0.0, "Preparing collection...")

        dimension = await self.embedding.detect_dimension()
        if force and self.store.has_collection(identity):
            logger.info("Force re-indexing %s", identity)
        self.store.create_collection(identity, dimension, self.splitter)

        committed = False
        try:
            yield ProgressEvent(5.0, "Scanning files...")
            files = await asyncio.to_thread(self.discover_files, root)
            logger.info("Found %d files to index in %s", len(files), identity)

            max_chunks = self.config.max_chunks
            batch_size = max(1, self.config.embedding_batch_size)
            buffer: list[CodeChunk] = []
            stored = 0
            indexed_files = 0
            limit_reached = False

            for i, path in enumerate(files):
                try:
                    text = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug("Skipping unreadable file %s: %s", path, e)
                    continue

                rel = path.relative_to(root).as_posix()
                chunks = chunk_text(
                    text,
                    rel,
                    max_chars=self.config.max_chunk_chars,
                    overlap_lines=self.config.chunk_overlap_lines,
                )

                taken = 0
                for chunk in chunks:
                    if stored + len(buffer) >= max_chunks:
                        limit_reached = True
                        break
                    buffer.append(chunk)
                    taken += 1
                    if len(buffer) >= batch_size:
                        await self._embed_and_store(identity, buffer)
                        stored += len(buffer)
                        buffer = []

                if taken or not limit_reached:
                    indexed_files += 1
                if limit_reached:
                    logger.warning("Reached chunk limit of %d, stopping indexing", max_chunks)
                    break

                percentage = 5.0 + 94.0 * (i + 1) / len(files)
                yield ProgressEvent(percentage, f"Processed {i + 1}/{len(files)} files")

            if buffer:
                await self._embed_and_store(identity, buffer)
                stored += len(buffer)

            rows = self.store.commit(identity)
            committed = True
        finally:
            if not committed:
                self.store.discard_staging(identity)

        if rows != stored:
            raise IndexingError(f"Stored {rows} chunks, expected {stored}")

        stats = IndexStats(
            indexed_files=indexed_files,
            total_chunks=stored,
            status="limit_reached" if limit_reached else "completed",
        )
        logger.info(
            "Indexed %d files, %d chunks (%s)",
            stats.indexed_files, stats.total_chunks, stats.status,
        )
        yield ProgressEvent(100.0, "Indexing complete", stats=stats)

    async def search(
        self,
        identity: str,
        query: str,
        limit: int = 10,
        extension_filter: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        vector = await self.embedding.embed(query)
        return self.store.search(identity, vector, limit=limit, extension_filter=extension_filter)


__all__ = [
    "CodebaseIndexer",
    "DEFAULT_EXTENSIONS",
    "DEFAULT_IGNORE_PATTERNS",
    "load_gitignore_patterns",
]
