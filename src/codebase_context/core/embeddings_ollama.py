"""Ollama local embeddings via /api/embed."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from .config import SettingLayers
from .embedding_types import ModelInfo, ProviderConfig
from .embeddings_base import HttpEmbeddingProvider
from .errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://127.0.0.1:11434"
SAMPLE_TEXT = "dimension check"


class OllamaEmbedding(HttpEmbeddingProvider):
    """Embeddings from a local Ollama server.

    Models are user-installed, so the registry is only a hint; the real
    dimension is measured by ``detect_dimension``.
    """

    name = "Ollama"
    DEFAULT_MODEL = "nomic-embed-text"
    SUPPORTED_MODELS = {
        "nomic-embed-text": ModelInfo(dimension=768, context_length=8192),
        "mxbai-embed-large": ModelInfo(dimension=1024, context_length=512),
        "all-minilm": ModelInfo(dimension=384, context_length=256),
    }

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, layers, transport)
        self.host = self.layers.resolve(
            "ollama_host",
            explicit=self.config.base_url,
            env=("OLLAMA_HOST",),
            fallback=DEFAULT_HOST,
        ).rstrip("/")
        if "://" not in self.host:
            self.host = f"http://{self.host}"

    async def detect_dimension(self) -> int:
        vector = await self.embed(SAMPLE_TEXT)
        if vector.dimension != self._dimension:
            logger.info(
                "Ollama model %s produces %d dimensions (expected %d)",
                self.model, vector.dimension, self._dimension,
            )
        return vector.dimension

    async def _request_embeddings(self, texts: list[str]) -> list[Sequence[float] | None] | None:
        data = await self._post_json(
            f"{self.host}/api/embed",
            {"model": self.model, "input": texts, "truncate": True},
        )
        if "error" in data:
            raise ProviderError(f"Ollama error: {data['error']}", provider=self.name)

        embeddings = data.get("embeddings")
        if not isinstance(embeddings, list):
            return None
        return embeddings


__all__ = ["OllamaEmbedding"]
