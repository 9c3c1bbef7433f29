"""Embedding provider selection.

The provider is chosen once, by name, when the engine is built:

    provider = create_embedding_provider(ContextConfig.from_user_config())
    vectors = await provider.embed_batch(["def foo(): ..."])
"""

from __future__ import annotations

import logging
from typing import Any

from .config import ContextConfig
from .embedding_types import ProviderConfig
from .embeddings_base import EmbeddingProvider
from .embeddings_hosted import HostedEmbedding
from .embeddings_ollama import OllamaEmbedding
from .embeddings_openai import OpenAIEmbedding
from .embeddings_vertex import VertexAIEmbedding
from .errors import ConfigError

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type[EmbeddingProvider]] = {
    "openai": OpenAIEmbedding,
    "vertexai": VertexAIEmbedding,
    "ollama": OllamaEmbedding,
    "litellm": HostedEmbedding,
}


def create_embedding_provider(
    config: ContextConfig,
    overrides: ProviderConfig | None = None,
    **kwargs: Any,
) -> EmbeddingProvider:
    """Instantiate the configured embedding provider.

    Args:
        config: Resolved application configuration
        overrides: Explicit provider settings; model and dimension fall back
            to the application config when not set here
        **kwargs: Passed to the provider constructor (e.g. ``transport``)

    Raises:
        ConfigError: Unknown provider name, or a mandatory setting is missing
    """
    name = (config.embedding_provider or "").lower()
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise ConfigError(
            f"Unknown embedding provider: {config.embedding_provider!r}. "
            f"Choose one of: {', '.join(sorted(PROVIDERS))}",
            context={"provider": config.embedding_provider},
        )

    provider_config = config.provider_config()
    if overrides is not None:
        provider_config = ProviderConfig(
            model=overrides.model if overrides.model is not None else provider_config.model,
            output_dimensionality=(
                overrides.output_dimensionality
                if overrides.output_dimensionality is not None
                else provider_config.output_dimensionality
            ),
            project_id=overrides.project_id,
            location=overrides.location,
            base_url=overrides.base_url,
            api_key=overrides.api_key,
            access_token=overrides.access_token,
            timeout=overrides.timeout,
        )

    provider = provider_cls(provider_config, config.setting_layers(), **kwargs)
    logger.debug("Created embedding provider %r", provider)
    return provider


def log_embedding_provider_info(provider: EmbeddingProvider) -> None:
    """Log which model and dimension the provider resolved to."""
    info = provider.describe()
    logger.info(
        "Embedding provider: %s (model=%s, dimension=%d, max_tokens=%d)",
        info["provider"], info["model"], info["dimension"], info["max_tokens"],
    )


__all__ = [
    "PROVIDERS",
    "create_embedding_provider",
    "log_embedding_provider_info",
    "EmbeddingProvider",
    "OpenAIEmbedding",
    "VertexAIEmbedding",
    "OllamaEmbedding",
    "HostedEmbedding",
]
