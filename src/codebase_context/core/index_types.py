"""Index lifecycle types - status, per-codebase record, run stats, progress."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class IndexStatus(str, Enum):
    NOT_INDEXED = "not_indexed"
    INDEXING = "indexing"
    INDEXED = "indexed"
    INDEX_FAILED = "index_failed"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class IndexStats:
    """Outcome of a successful indexing run."""
    indexed_files: int
    total_chunks: int
    status: str = "completed"  # or "limit_reached"

    def __post_init__(self):
        if self.indexed_files < 0 or self.total_chunks < 0:
            raise ValueError("Index stats counts must be non-negative")

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexedFiles": self.indexed_files,
            "totalChunks": self.total_chunks,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexStats":
        return cls(
            indexed_files=int(data["indexedFiles"]),
            total_chunks=int(data["totalChunks"]),
            status=str(data.get("status", "completed")),
        )


@dataclass
class IndexRecord:
    """Lifecycle state of one codebase, keyed by its normalized path."""
    status: IndexStatus
    progress_percentage: float = 0.0
    last_indexed_stats: IndexStats | None = None
    last_error: str | None = None
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "indexingPercentage": self.progress_percentage,
            "lastIndexedStats": self.last_indexed_stats.to_dict() if self.last_indexed_stats else None,
            "errorMessage": self.last_error,
            "lastUpdated": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexRecord":
        """Parse a persisted record.

        Raises:
            KeyError, ValueError, TypeError: On malformed data
        """
        stats = data.get("lastIndexedStats")
        progress = float(data.get("indexingPercentage", 0.0))
        if not 0.0 <= progress <= 100.0:
            raise ValueError(f"Progress out of range: {progress}")
        return cls(
            status=IndexStatus(data["status"]),
            progress_percentage=progress,
            last_indexed_stats=IndexStats.from_dict(stats) if stats else None,
            last_error=data.get("errorMessage"),
            updated_at=str(data.get("lastUpdated") or utc_now()),
        )


@dataclass(frozen=True)
class ProgressEvent:
    """One progress report from an indexing run.

    ``stats`` is only set on the final event of a successful run.
    """
    percentage: float
    phase: str = ""
    stats: IndexStats | None = None


__all__ = ["IndexStatus", "IndexStats", "IndexRecord", "ProgressEvent", "utc_now"]
