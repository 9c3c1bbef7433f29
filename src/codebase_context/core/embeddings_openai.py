"""OpenAI-compatible /embeddings endpoint."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx

from .config import SettingLayers
from .embedding_types import ModelInfo, ProviderConfig
from .embeddings_base import HttpEmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIEmbedding(HttpEmbeddingProvider):
    """OpenAI embeddings (or any API speaking the same protocol).

    ``dimensions`` is only sent when an output dimensionality is configured,
    since older models reject the parameter.
    """

    name = "OpenAI"
    DEFAULT_MODEL = "text-embedding-3-small"
    SUPPORTED_MODELS = {
        "text-embedding-3-small": ModelInfo(
            dimension=1536,
            context_length=8192,
            description="High performance and cost-effective embedding model (recommended)",
            supported_dimensions=(1536, 1024, 768, 512, 256),
        ),
        "text-embedding-3-large": ModelInfo(
            dimension=3072,
            context_length=8192,
            description="Highest performance embedding model with larger dimensions",
            supported_dimensions=(3072, 1536, 1024, 768, 512, 256),
        ),
        "text-embedding-ada-002": ModelInfo(
            dimension=1536,
            context_length=8192,
            description="Legacy model (use text-embedding-3-small instead)",
        ),
    }

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, layers, transport)
        self.api_key = self.layers.require(
            None,
            explicit=self.config.api_key,
            env=("OPENAI_API_KEY",),
            description="OpenAI API key",
        )
        self.base_url = self.layers.resolve(
            "openai_base_url",
            explicit=self.config.base_url,
            env=("OPENAI_BASE_URL",),
            fallback=DEFAULT_BASE_URL,
        ).rstrip("/")

    async def _request_embeddings(self, texts: list[str]) -> list[Sequence[float] | None] | None:
        payload: dict[str, Any] = {"model": self.model, "input": texts}
        if self.config.output_dimensionality is not None:
            payload["dimensions"] = self.config.output_dimensionality

        data = await self._post_json(
            f"{self.base_url}/embeddings",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        items = data.get("data")
        if not isinstance(items, list):
            return None

        # Items carry an explicit index; don't trust list order
        rows: list[Sequence[float] | None] = [None] * len(items)
        for position, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            index = item.get("index", position)
            if isinstance(index, int) and 0 <= index < len(rows):
                rows[index] = item.get("embedding")
        return rows


__all__ = ["OpenAIEmbedding"]
