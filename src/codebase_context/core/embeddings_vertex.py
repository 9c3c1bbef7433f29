"""Vertex AI embeddings over the publisher-model :predict REST endpoint."""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import Any, Sequence

import httpx

from .config import SettingLayers
from .embedding_types import ModelInfo, ProviderConfig
from .embeddings_base import HttpEmbeddingProvider
from .errors import ConfigError, ProviderError

logger = logging.getLogger(__name__)

PROJECT_ENV = ("VERTEX_PROJECT", "GOOGLE_CLOUD_PROJECT")
LOCATION_ENV = ("VERTEX_LOCATION", "GOOGLE_CLOUD_LOCATION")
TOKEN_ENV = ("VERTEX_ACCESS_TOKEN", "GOOGLE_OAUTH_ACCESS_TOKEN")
DEFAULT_LOCATION = "global"


class VertexAIEmbedding(HttpEmbeddingProvider):
    """Gemini / text-embedding models served by Vertex AI.

    Project id is mandatory (explicit > config ``vertex_project`` > env).
    Location falls back to ``global``. The bearer token is taken from the
    config or env, otherwise fetched once via ``gcloud auth print-access-token``.
    """

    name = "VertexAI"
    DEFAULT_MODEL = "gemini-embedding-001"
    SUPPORTED_MODELS = {
        "gemini-embedding-001": ModelInfo(
            dimension=3072,
            context_length=2048,
            description="Gemini text embedding model served via Vertex AI (recommended)",
            supported_dimensions=(3072, 1536, 768, 256),
        ),
        "text-embedding-005": ModelInfo(
            dimension=768,
            context_length=2048,
            description="English and code text embedding model",
        ),
        "text-multilingual-embedding-002": ModelInfo(
            dimension=768,
            context_length=2048,
            description="Multilingual text embedding model",
        ),
    }

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, layers, transport)
        self.project_id = self.layers.require(
            "vertex_project",
            explicit=self.config.project_id,
            env=PROJECT_ENV,
            description="Vertex AI project ID",
        )
        self.location = self.layers.resolve(
            "vertex_location",
            explicit=self.config.location,
            env=LOCATION_ENV,
            fallback=DEFAULT_LOCATION,
        )
        self._access_token: str | None = self.layers.resolve(
            None, explicit=self.config.access_token, env=TOKEN_ENV
        )
        self._token_lock = asyncio.Lock()

    @property
    def endpoint(self) -> str:
        host = (
            "aiplatform.googleapis.com"
            if self.location == "global"
            else f"{self.location}-aiplatform.googleapis.com"
        )
        return (
            f"https://{host}/v1/projects/{self.project_id}/locations/{self.location}"
            f"/publishers/google/models/{self.model}:predict"
        )

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            if self._access_token:
                return self._access_token

            gcloud = shutil.which("gcloud")
            if gcloud is None:
                raise ConfigError(
                    "Vertex AI access token is required. Set VERTEX_ACCESS_TOKEN or install the gcloud CLI."
                )

            proc = await asyncio.create_subprocess_exec(
                gcloud, "auth", "print-access-token",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
            token = stdout.decode().strip()
            if proc.returncode != 0 or not token:
                raise ProviderError(
                    f"gcloud auth print-access-token failed: {stderr.decode().strip()}",
                    provider=self.name,
                )
            logger.debug("Obtained Vertex AI access token from gcloud")
            self._access_token = token
            return token

    async def _request_embeddings(self, texts: list[str]) -> list[Sequence[float] | None] | None:
        token = await self._get_access_token()
        payload: dict[str, Any] = {
            "instances": [{"content": t} for t in texts],
            "parameters": {
                "outputDimensionality": self._dimension,
                "autoTruncate": True,
            },
        }
        data = await self._post_json(
            self.endpoint,
            payload,
            headers={"Authorization": f"Bearer {token}"},
        )

        predictions = data.get("predictions")
        if not isinstance(predictions, list):
            return None
        return [
            (p.get("embeddings") or {}).get("values") if isinstance(p, dict) else None
            for p in predictions
        ]


__all__ = ["VertexAIEmbedding"]
