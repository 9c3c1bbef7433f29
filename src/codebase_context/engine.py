"""Wires configuration, embedding provider, storage and lifecycle together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .core.config import ContextConfig, log_configuration_summary
from .core.embeddings import create_embedding_provider, log_embedding_provider_info
from .core.embeddings_base import EmbeddingProvider
from .core.lifecycle import IndexLifecycleManager
from .core.pipeline import CodebaseIndexer
from .core.snapshot import SnapshotStore
from .core.vector_store import LocalVectorStore

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    config: ContextConfig
    provider: EmbeddingProvider
    snapshot: SnapshotStore
    store: LocalVectorStore
    indexer: CodebaseIndexer
    manager: IndexLifecycleManager

    async def aclose(self) -> None:
        await self.provider.close()


def open_snapshot(config: ContextConfig) -> SnapshotStore:
    """Load the snapshot for read-only use (no provider needed)."""
    snapshot = SnapshotStore(config.snapshot_file)
    snapshot.load()
    return snapshot


def build_engine(
    config: ContextConfig | None = None,
    provider: EmbeddingProvider | None = None,
) -> Engine:
    """Build the full object graph from user configuration.

    Raises:
        ConfigError: Unknown provider or missing mandatory provider setting
    """
    config = config or ContextConfig.from_user_config()
    log_configuration_summary(config)

    provider = provider or create_embedding_provider(config)
    log_embedding_provider_info(provider)

    snapshot = open_snapshot(config)
    store = LocalVectorStore(config.index_dir, max_collections=config.max_collections)
    indexer = CodebaseIndexer(provider, store, config)
    manager = IndexLifecycleManager(snapshot, indexer, store)

    return Engine(
        config=config,
        provider=provider,
        snapshot=snapshot,
        store=store,
        indexer=indexer,
        manager=manager,
    )


__all__ = ["Engine", "build_engine", "open_snapshot"]
