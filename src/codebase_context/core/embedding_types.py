"""Embedding types - vectors, model registry entries, provider config."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class EmbeddingVector:
    """One embedding returned by a provider."""
    values: list[float]
    dimension: int = -1

    def __post_init__(self):
        if self.dimension == -1:
            self.dimension = len(self.values)
        if self.dimension != len(self.values):
            raise ValueError(
                f"Embedding dimension {self.dimension} does not match {len(self.values)} values"
            )


@dataclass(frozen=True)
class ModelInfo:
    """Static registry entry for a known embedding model."""
    dimension: int
    context_length: int
    description: str = ""
    # Matryoshka-style truncation targets; empty = only `dimension`
    supported_dimensions: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProviderConfig:
    """Explicit (highest priority) provider settings.

    Attributes:
        model: Model identifier. Provider default if not set.
        output_dimensionality: Requested output dimension. Wins over the registry.
        project_id: Cloud project (Vertex AI).
        location: Cloud region (Vertex AI), e.g. "global" or "us-central1".
        base_url: API endpoint (OpenAI-compatible, Ollama host).
        api_key: API key for hosted models.
        access_token: OAuth bearer token (Vertex AI).
        timeout: Request timeout in seconds.
    """
    model: str | None = None
    output_dimensionality: int | None = None
    project_id: str | None = None
    location: str | None = None
    base_url: str | None = None
    api_key: str | None = field(default=None, repr=False)
    access_token: str | None = field(default=None, repr=False)
    timeout: float = 60.0


__all__ = ["EmbeddingVector", "ModelInfo", "ProviderConfig"]
