"""Shared fixtures."""

import pytest

from codebase_context.core.config import ContextConfig
from codebase_context.core.embedding_types import ModelInfo, ProviderConfig
from codebase_context.core.embeddings_base import EmbeddingProvider

KEYWORDS = ("alpha", "beta", "gamma")


class KeywordEmbedding(EmbeddingProvider):
    """Deterministic offline provider: one dimension per keyword plus a bias."""

    name = "Keyword"
    DEFAULT_MODEL = "keyword-count"
    SUPPORTED_MODELS = {"keyword-count": ModelInfo(dimension=len(KEYWORDS) + 1, context_length=4096)}

    def __init__(self, fail_times=0, error=None):
        super().__init__(ProviderConfig())
        self.batches = []
        self.fail_times = fail_times
        self.error = error

    async def _request_embeddings(self, texts):
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        self.batches.append(list(texts))
        return [[float(t.lower().count(k)) for k in KEYWORDS] + [0.01] for t in texts]


@pytest.fixture
def keyword_provider():
    return KeywordEmbedding()


@pytest.fixture
def context_config(tmp_path):
    return ContextConfig(
        embedding_provider="keyword",
        embedding_batch_size=2,
        data_dir=tmp_path / "data",
        max_collections=5,
        max_chunk_chars=400,
        chunk_overlap_lines=1,
    )


@pytest.fixture
def sample_repo(tmp_path):
    """A small codebase with indexable, ignored and unsupported files."""
    repo = tmp_path / "repo"
    (repo / "src").mkdir(parents=True)
    (repo / "src" / "alpha.py").write_text("def alpha():\n    return 'alpha alpha'\n")
    (repo / "src" / "beta.ts").write_text("export const beta = () => 'beta';\n")
    (repo / "docs").mkdir()
    (repo / "docs" / "gamma.md").write_text("# gamma\n\nNotes about gamma.\n")
    (repo / "node_modules" / "lib").mkdir(parents=True)
    (repo / "node_modules" / "lib" / "index.js").write_text("alpha")
    (repo / "secret").mkdir()
    (repo / "secret" / "keys.py").write_text("alpha = 1\n")
    (repo / ".gitignore").write_text("secret/\n")
    (repo / "notes.txt").write_text("alpha beta gamma\n")
    (repo / "bundle.min.js").write_text("alpha")
    return repo
