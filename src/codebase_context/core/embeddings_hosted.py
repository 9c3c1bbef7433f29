"""Hosted embedding models through dspy.Embedder (litellm)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from .config import SettingLayers
from .embedding_types import ModelInfo, ProviderConfig
from .embeddings_base import EmbeddingProvider

logger = logging.getLogger(__name__)

# Known dimensions for common models
KNOWN_MODELS = {
    "openai/text-embedding-3-small": ModelInfo(1536, 8192, supported_dimensions=(1536, 1024, 768, 512, 256)),
    "openai/text-embedding-3-large": ModelInfo(3072, 8192, supported_dimensions=(3072, 1536, 1024, 768, 512, 256)),
    "openai/text-embedding-ada-002": ModelInfo(1536, 8192),
    "cohere/embed-english-v3.0": ModelInfo(1024, 512),
    "cohere/embed-english-light-v3.0": ModelInfo(384, 512),
    "voyage/voyage-3": ModelInfo(1024, 32000),
    "voyage/voyage-3-lite": ModelInfo(512, 32000),
    "vertex_ai/gemini-embedding-001": ModelInfo(3072, 2048, supported_dimensions=(3072, 1536, 768, 256)),
}


class HostedEmbedding(EmbeddingProvider):
    """Any litellm-routable embedding model, e.g. ``cohere/embed-english-v3.0``.

    API keys are read by litellm from the provider's usual env vars. The
    embedder is synchronous and runs in a worker thread.
    """

    name = "LiteLLM"
    DEFAULT_MODEL = "openai/text-embedding-3-small"
    SUPPORTED_MODELS = KNOWN_MODELS

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
        embedder: Any = None,
    ):
        super().__init__(config, layers)
        self._embedder = embedder
        self._detected_dimension: int | None = None

    def _get_embedder(self) -> Any:
        if self._embedder is None:
            import dspy

            kwargs: dict[str, Any] = {"caching": False}
            if self.config.api_key:
                kwargs["api_key"] = self.config.api_key
            if self.config.base_url:
                kwargs["api_base"] = self.config.base_url
            if self.config.output_dimensionality is not None:
                kwargs["dimensions"] = self.config.output_dimensionality

            logger.info("Using hosted embedding model: %s", self.model)
            self._embedder = dspy.Embedder(self.model, **kwargs)
        return self._embedder

    async def detect_dimension(self) -> int:
        if self.model in self.SUPPORTED_MODELS or self.config.output_dimensionality is not None:
            return self._dimension
        if self._detected_dimension is None:
            logger.debug("Unknown embedding dim for %s, computing...", self.model)
            vector = await self.embed("test")
            self._detected_dimension = vector.dimension
        return self._detected_dimension

    async def _request_embeddings(self, texts: list[str]) -> list[Sequence[float] | None] | None:
        embedder = self._get_embedder()
        result = await asyncio.to_thread(embedder, texts, batch_size=len(texts))
        if result is None:
            return None
        return [list(row) for row in result]


__all__ = ["HostedEmbedding", "KNOWN_MODELS"]
