"""Embedding provider base classes.

Every backend is one EmbeddingProvider subclass. Dimension and token budget
are resolved once at construction from the subclass's static model registry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Sequence

import httpx

from .config import SettingLayers
from .embedding_types import EmbeddingVector, ModelInfo, ProviderConfig
from .errors import ProviderError

logger = logging.getLogger(__name__)

# Token estimation heuristic, not exact tokenization.
# Normal code averages ~4 chars/token.
CHARS_PER_TOKEN = 4

# Used for models missing from a provider's registry
DEFAULT_DIMENSION = 3072
DEFAULT_CONTEXT_LENGTH = 2048


def estimate_tokens(text: str) -> int:
    """Estimate token count from character length."""
    return -(-len(text) // CHARS_PER_TOKEN)


class EmbeddingProvider(ABC):
    """Uniform contract over one embedding backend.

    Subclasses set ``name``, ``DEFAULT_MODEL`` and ``SUPPORTED_MODELS`` and
    implement ``_request_embeddings``. Dimension resolution:

    1. Look up the model in ``SUPPORTED_MODELS``
    2. If found, adopt its dimension and context length
    3. Otherwise use DEFAULT_DIMENSION / DEFAULT_CONTEXT_LENGTH
    4. An explicit ``output_dimensionality`` always wins

    The override is not checked against ``get_supported_dimensions()``; a
    backend that rejects it fails the request with ProviderError.
    """

    name: ClassVar[str] = "base"
    DEFAULT_MODEL: ClassVar[str] = ""
    SUPPORTED_MODELS: ClassVar[dict[str, ModelInfo]] = {}

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
    ):
        self.config = config or ProviderConfig()
        self.layers = layers or SettingLayers()
        self.model = self.config.model or self.DEFAULT_MODEL

        info = self.SUPPORTED_MODELS.get(self.model)
        if info is not None:
            self._dimension = info.dimension
            self.max_tokens = info.context_length
        else:
            self._dimension = DEFAULT_DIMENSION
            self.max_tokens = DEFAULT_CONTEXT_LENGTH

        if self.config.output_dimensionality is not None:
            self._dimension = self.config.output_dimensionality

    @classmethod
    def get_supported_models(cls) -> dict[str, ModelInfo]:
        return dict(cls.SUPPORTED_MODELS)

    def get_dimension(self) -> int:
        return self._dimension

    async def detect_dimension(self) -> int:
        """Dimension this provider produces.

        Static-registry backends answer without a network call. Subclasses
        that must query the backend override this.
        """
        return self._dimension

    def get_supported_dimensions(self) -> frozenset[int]:
        info = self.SUPPORTED_MODELS.get(self.model)
        if info is not None and info.supported_dimensions:
            return frozenset(info.supported_dimensions)
        return frozenset({self._dimension})

    def is_dimension_supported(self, dimension: int) -> bool:
        return dimension in self.get_supported_dimensions()

    def preprocess_text(self, text: str) -> str:
        """Replace empty input and truncate to the estimated token budget."""
        if not text:
            return " "
        max_chars = self.max_tokens * CHARS_PER_TOKEN
        if len(text) > max_chars:
            return text[:max_chars]
        return text

    def preprocess_texts(self, texts: Sequence[str]) -> list[str]:
        return [self.preprocess_text(t) for t in texts]

    @abstractmethod
    async def _request_embeddings(self, texts: list[str]) -> list[Sequence[float] | None] | None:
        """Issue one backend request for ``texts``.

        Returns one entry per input (None where the backend returned no
        vector), or None if the response carried no embeddings at all.
        """

    async def _call_backend(self, texts: list[str], operation: str) -> list[Sequence[float] | None] | None:
        try:
            return await self._request_embeddings(texts)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(
                f"{self.name} {operation} failed: {e}",
                provider=self.name,
            ) from e

    async def embed(self, text: str) -> EmbeddingVector:
        """Embed a single text with one backend request."""
        rows = await self._call_backend([self.preprocess_text(text)], "embedding")

        if not rows or not rows[0]:
            raise ProviderError(
                f"{self.name} embedding API returned invalid response",
                provider=self.name,
            )
        return self._to_vector(rows[0], 0)

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingVector]:
        """Embed texts in one request, preserving order.

        Fails as a whole if the backend fails or any element lacks vector data.
        """
        if not texts:
            return []

        processed = self.preprocess_texts(texts)
        rows = await self._call_backend(processed, "batch embedding")

        if rows is None:
            raise ProviderError(
                f"{self.name} embedding API returned invalid response",
                provider=self.name,
            )
        if len(rows) != len(processed):
            raise ProviderError(
                f"{self.name} embedding API returned {len(rows)} embeddings for {len(processed)} inputs",
                provider=self.name,
            )

        return [self._to_vector(row, i) for i, row in enumerate(rows)]

    def _to_vector(self, row: Sequence[float] | None, index: int) -> EmbeddingVector:
        """Convert one backend row, rejecting empty or non-numeric data."""
        if not row:
            raise ProviderError(
                f"{self.name} embedding API returned invalid embedding data at index {index}",
                provider=self.name,
            )
        try:
            return EmbeddingVector(values=[float(v) for v in row])
        except (TypeError, ValueError) as e:
            raise ProviderError(
                f"{self.name} embedding API returned invalid embedding data at index {index}: {e}",
                provider=self.name,
            ) from e

    def describe(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "model": self.model,
            "dimension": self._dimension,
            "max_tokens": self.max_tokens,
        }

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> "EmbeddingProvider":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r}, dimension={self._dimension})"


class HttpEmbeddingProvider(EmbeddingProvider):
    """Base for providers that talk to a JSON HTTP API via httpx."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        layers: SettingLayers | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config, layers)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the client inside the running event loop."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = await self._get_client().post(url, json=payload, headers=headers)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.debug("%s error response: %s", self.name, response.text[:500])
            raise ProviderError(
                f"{self.name} API error {response.status_code}: {_error_detail(response)}",
                provider=self.name,
                context={"status_code": response.status_code},
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.name} API returned a non-JSON response",
                provider=self.name,
            ) from e

        if not isinstance(data, dict):
            raise ProviderError(f"{self.name} API returned invalid response", provider=self.name)
        return data


def _error_detail(response: httpx.Response) -> str:
    """Pull the most useful error message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str):
        return error
    return response.text[:200] or response.reason_phrase


__all__ = [
    "EmbeddingProvider",
    "HttpEmbeddingProvider",
    "estimate_tokens",
    "CHARS_PER_TOKEN",
    "DEFAULT_DIMENSION",
    "DEFAULT_CONTEXT_LENGTH",
]
