"""Typed exception hierarchy for codebase-context.

Hierarchy
---------
ContextError (base)
├── ConfigError          – unresolvable mandatory configuration
├── ProviderError        – embedding backend transport / response failures
├── PathError            – invalid filesystem target
├── ConcurrencyError     – re-entrant indexing attempt
├── AlreadyIndexedError  – index exists and force was not given
├── CapacityError        – vector storage collection ceiling reached
├── SnapshotError        – snapshot file could not be written
├── IndexingError        – pipeline-internal failure during a run
└── IndexNotFoundError   – search against a codebase with no index

None of these carry user-facing formatting; the CLI renders them.
"""

from __future__ import annotations

from typing import Any


class ContextError(Exception):
    """Base exception for codebase-context."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class ConfigError(ContextError):
    """A mandatory configuration value could not be resolved."""


class ProviderError(ContextError):
    """An embedding backend request failed or returned unusable data."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.provider = provider


class PathError(ContextError):
    """Codebase path does not exist or is not a directory."""


class ConcurrencyError(ContextError):
    """Codebase is already being indexed."""


class AlreadyIndexedError(ContextError):
    """Codebase already has an index and force was not requested."""


class CapacityError(ContextError):
    """Vector storage cannot hold another collection."""


class SnapshotError(ContextError):
    """Snapshot state could not be persisted."""


class IndexingError(ContextError):
    """Indexing pipeline failed while a run was active."""


class IndexNotFoundError(ContextError):
    """Codebase has not been indexed."""


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
]
