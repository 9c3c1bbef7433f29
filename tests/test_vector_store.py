"""Tests for local vector storage and chunking."""

import pytest

from codebase_context.core.embedding_types import EmbeddingVector
from codebase_context.core.errors import IndexingError
from codebase_context.core.vector_store import LocalVectorStore, collection_name
from codebase_context.core.vector_types import CodeChunk, chunk_text


def chunk(path, text="x", start=1):
    return CodeChunk(id=f"{path}:{start}", text=text, relative_path=path, start_line=start, end_line=start)


class TestCollectionName:
    def test_format(self):
        name = collection_name("/home/user/repo")
        assert name.startswith("code_chunks_")
        assert len(name) == len("code_chunks_") + 8

    def test_stable(self):
        assert collection_name("/a") == collection_name("/a")
        assert collection_name("/a") != collection_name("/b")


class TestLocalVectorStore:
    """Tests for LocalVectorStore."""

    @pytest.fixture
    def store(self, tmp_path):
        return LocalVectorStore(tmp_path / "indexes", max_collections=2)

    def test_create_and_drop(self, store):
        assert not store.has_collection("/a")
        store.create_collection("/a", dimension=3)
        assert not store.has_collection("/a")
        store.commit("/a")
        assert store.has_collection("/a")
        assert store.drop_collection("/a") is True
        assert store.drop_collection("/a") is False

    def test_collection_limit(self, store):
        """Only committed collections count toward the limit."""
        assert store.check_collection_limit()
        for identity in ("/a", "/b"):
            store.create_collection(identity, 3)
            assert store.check_collection_limit()
            store.commit(identity)
        assert not store.check_collection_limit()
        assert store.list_collections() == sorted([collection_name("/a"), collection_name("/b")])

    def test_search_ranks_by_cosine(self, store):
        store.create_collection("/a", 2)
        store.add("/a", [chunk("x.py", "x"), chunk("y.py", "y")],
                  [EmbeddingVector([1.0, 0.0]), EmbeddingVector([0.0, 1.0])])
        assert store.commit("/a") == 2

        results = store.search("/a", EmbeddingVector([0.1, 0.9]), limit=2)
        assert [r.chunk.relative_path for r in results] == ["y.py", "x.py"]
        assert results[0].score == pytest.approx(0.9 / (0.82 ** 0.5), rel=1e-5)

    def test_search_limit(self, store):
        store.create_collection("/a", 1)
        store.add("/a", [chunk(f"{i}.py") for i in range(5)], [EmbeddingVector([1.0])] * 5)
        store.commit("/a")
        assert len(store.search("/a", EmbeddingVector([1.0]), limit=3)) == 3

    def test_extension_filter(self, store):
        store.create_collection("/a", 1)
        store.add("/a", [chunk("a.py"), chunk("b.ts")], [EmbeddingVector([1.0]), EmbeddingVector([1.0])])
        store.commit("/a")

        results = store.search("/a", EmbeddingVector([1.0]), extension_filter=["ts"])
        assert [r.chunk.relative_path for r in results] == ["b.ts"]

    def test_dimension_mismatch(self, store):
        store.create_collection("/a", 3)
        with pytest.raises(IndexingError, match="dimension"):
            store.add("/a", [chunk("a.py")], [EmbeddingVector([1.0, 2.0])])

    def test_add_without_collection(self, store):
        with pytest.raises(IndexingError):
            store.add("/missing", [chunk("a.py")], [EmbeddingVector([1.0])])

    def test_recreate_discards_rows(self, store):
        store.create_collection("/a", 1)
        store.add("/a", [chunk("a.py")], [EmbeddingVector([1.0])])
        store.commit("/a")
        store.create_collection("/a", 1)
        store.commit("/a")
        assert store.count("/a") == 0

    def test_search_uncommitted(self, store):
        store.create_collection("/a", 1)
        assert store.search("/a", EmbeddingVector([1.0])) == []

    def test_unfinished_build_keeps_previous(self, store):
        """A build that is never committed leaves the old collection as it was."""
        store.create_collection("/a", 1)
        store.add("/a", [chunk("old.py")], [EmbeddingVector([1.0])])
        store.commit("/a")

        store.create_collection("/a", 1)
        store.add("/a", [chunk("new.py")], [EmbeddingVector([1.0])])
        assert store.discard_staging("/a") is True

        assert store.has_collection("/a")
        results = store.search("/a", EmbeddingVector([1.0]))
        assert [r.chunk.relative_path for r in results] == ["old.py"]
        assert not store.staging_path("/a").exists()

    def test_commit_replaces_previous(self, store):
        store.create_collection("/a", 1)
        store.add("/a", [chunk("old.py")], [EmbeddingVector([1.0])])
        store.commit("/a")

        store.create_collection("/a", 1)
        store.add("/a", [chunk("new.py")], [EmbeddingVector([1.0])])
        store.commit("/a")

        results = store.search("/a", EmbeddingVector([1.0]))
        assert [r.chunk.relative_path for r in results] == ["new.py"]
        assert store.list_collections() == [collection_name("/a")]

    def test_drop_removes_unfinished_build(self, store):
        store.create_collection("/a", 1)
        assert store.drop_collection("/a") is False
        assert not store.staging_path("/a").exists()


class TestChunkText:
    """Tests for the line-window chunker."""

    def test_empty(self):
        assert chunk_text("   \n\n", "a.py") == []

    def test_single_chunk(self):
        chunks = chunk_text("a = 1\nb = 2\n", "pkg/a.py")
        assert len(chunks) == 1
        assert chunks[0].start_line == 1
        assert chunks[0].language == "python"
        assert chunks[0].file_extension == ".py"

    def test_windows_with_overlap(self):
        text = "\n".join(f"line {i:02d}" for i in range(1, 21))
        chunks = chunk_text(text, "a.py", max_chars=40, overlap_lines=1)

        assert len(chunks) > 1
        for chunk_ in chunks:
            assert len(chunk_.text) <= 40
        # Consecutive windows share one line
        assert chunks[1].start_line == chunks[0].end_line
        assert chunks[-1].end_line == 20

    def test_long_line_split(self):
        chunks = chunk_text("x" * 250, "a.py", max_chars=100, overlap_lines=0)
        assert [len(c.text) for c in chunks] == [100, 100, 50]
        assert all(c.start_line == 1 for c in chunks)

    def test_ids_unique(self):
        text = "\n".join(["same"] * 30)
        chunks = chunk_text(text, "a.py", max_chars=30, overlap_lines=0)
        assert len({c.id for c in chunks}) == len(chunks)

    def test_document_header(self):
        doc = chunk_text("a = 1", "a.py")[0].to_document()
        assert doc.startswith("# File: a.py:1-1")
