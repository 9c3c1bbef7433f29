"""Core components: configuration, embedding providers, snapshot state, indexing."""

from .errors import (
    AlreadyIndexedError,
    CapacityError,
    ConcurrencyError,
    ConfigError,
    ContextError,
    IndexingError,
    IndexNotFoundError,
    PathError,
    ProviderError,
    SnapshotError,
)
from .index_types import IndexRecord, IndexStats, IndexStatus, ProgressEvent
from .paths import normalize_path

__all__ = [
    "ContextError",
    "ConfigError",
    "ProviderError",
    "PathError",
    "ConcurrencyError",
    "AlreadyIndexedError",
    "CapacityError",
    "SnapshotError",
    "IndexingError",
    "IndexNotFoundError",
    "IndexRecord",
    "IndexStats",
    "IndexStatus",
    "ProgressEvent",
    "normalize_path",
]
