"""Resolved application configuration.

Two resolution schemes live here:

* ``ContextConfig`` - application settings. CONTEXT_* env vars > config.yaml > defaults.
* ``SettingLayers`` - provider identity/location settings, resolved once when a
  provider is constructed. Explicit value > config.yaml > env vars > fallback.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Sequence, TypeVar

from .embedding_types import ProviderConfig
from .errors import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_MAPPINGS: dict[str, str] = {
    "embedding_provider": "CONTEXT_EMBEDDING_PROVIDER",
    "embedding_model": "CONTEXT_EMBEDDING_MODEL",
    "embedding_dimension": "CONTEXT_EMBEDDING_DIMENSION",
    "embedding_batch_size": "CONTEXT_EMBEDDING_BATCH_SIZE",
    "data_dir": "CONTEXT_DATA_DIR",
    "max_collections": "CONTEXT_MAX_COLLECTIONS",
    "max_chunks": "CONTEXT_MAX_CHUNKS",
}

ENV_TYPES: dict[str, type] = {
    "embedding_dimension": int,
    "embedding_batch_size": int,
    "max_collections": int,
    "max_chunks": int,
}


def _cast_value(value: str, target_type: type) -> Any:
    """Cast string value to target type."""
    if target_type is bool:
        return value.lower() in ("true", "1", "yes", "on")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _get_env(key: str, default: T, environ: Mapping[str, str] | None = None) -> T:
    """Get environment variable with type casting."""
    env_var = ENV_MAPPINGS.get(key)
    if not env_var:
        return default

    environ = os.environ if environ is None else environ
    value = environ.get(env_var)
    if value is None or value == "":
        return default

    target_type = ENV_TYPES.get(key)
    if target_type is None and default is not None:
        target_type = type(default)
    if target_type is None:
        return value  # type: ignore[return-value]

    try:
        return _cast_value(value, target_type)
    except (ValueError, TypeError):
        logger.warning("Invalid value for %s: %s", env_var, value)
        return default


def _is_unset(value: Any) -> bool:
    return value is None or value == ""


@dataclass(frozen=True)
class SettingLayers:
    """Ordered configuration tiers for provider construction.

    Resolution order (highest priority first):
    1. Explicit value passed by the caller (e.g. a ProviderConfig field)
    2. Instance defaults (the user config file mapping)
    3. Environment variables, first match wins
    4. Hard-coded fallback

    Both mappings are copied and frozen at construction, so later changes to
    ``os.environ`` or the config file do not affect an existing provider.
    """

    defaults: Mapping[str, Any] = field(default_factory=dict)
    environ: Mapping[str, str] = field(default_factory=lambda: dict(os.environ))

    def __post_init__(self) -> None:
        object.__setattr__(self, "defaults", MappingProxyType(dict(self.defaults)))
        object.__setattr__(self, "environ", MappingProxyType(dict(self.environ)))

    def resolve(
        self,
        key: str | None,
        explicit: Any = None,
        env: Sequence[str] = (),
        fallback: Any = None,
    ) -> Any:
        if not _is_unset(explicit):
            return explicit

        if key is not None and not _is_unset(self.defaults.get(key)):
            return self.defaults[key]

        for name in env:
            value = self.environ.get(name)
            if not _is_unset(value):
                return value

        return fallback

    def require(
        self,
        key: str | None,
        explicit: Any = None,
        env: Sequence[str] = (),
        description: str = "value",
    ) -> Any:
        """Resolve a mandatory setting.

        Raises:
            ConfigError: If no tier provides a value
        """
        value = self.resolve(key, explicit=explicit, env=env)
        if _is_unset(value):
            sources = [f"config key '{key}'"] if key else []
            sources.extend(env)
            raise ConfigError(
                f"{description} is required. Set it explicitly or via {' / '.join(sources)}.",
                context={"key": key, "env": list(env)},
            )
        return value


@dataclass(frozen=True)
class ContextConfig:
    """Application settings resolved from env vars, config.yaml and defaults."""

    embedding_provider: str = "openai"
    embedding_model: str | None = None
    embedding_dimension: int | None = None
    embedding_batch_size: int = 100
    data_dir: Path = field(default_factory=lambda: Path.home() / ".context")
    max_collections: int = 50
    max_chunks: int = 450_000
    max_chunk_chars: int = 2500
    chunk_overlap_lines: int = 5
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def snapshot_file(self) -> Path:
        return self.data_dir / "snapshot.json"

    @property
    def index_dir(self) -> Path:
        return self.data_dir / "indexes"

    @classmethod
    def from_user_config(cls, environ: Mapping[str, str] | None = None) -> "ContextConfig":
        """Load from ~/.context/config.yaml with CONTEXT_* env overrides."""
        from .user_config import DEFAULT_CONFIG, load_config, load_env_file

        load_env_file()
        config = load_config()

        def get(key: str) -> Any:
            return _get_env(key, config.get(key, DEFAULT_CONFIG.get(key)), environ)

        return cls(
            embedding_provider=str(get("embedding_provider")).lower(),
            embedding_model=get("embedding_model"),
            embedding_dimension=get("embedding_dimension"),
            embedding_batch_size=get("embedding_batch_size"),
            data_dir=Path(get("data_dir")).expanduser(),
            max_collections=get("max_collections"),
            max_chunks=get("max_chunks"),
            max_chunk_chars=config.get("max_chunk_chars", DEFAULT_CONFIG["max_chunk_chars"]),
            chunk_overlap_lines=config.get("chunk_overlap_lines", DEFAULT_CONFIG["chunk_overlap_lines"]),
            raw=MappingProxyType(dict(config)),
        )

    def provider_config(
        self,
        model: str | None = None,
        dimension: int | None = None,
    ) -> ProviderConfig:
        """Build the explicit provider tier, letting call-site values win."""
        return ProviderConfig(
            model=model if model is not None else self.embedding_model,
            output_dimensionality=dimension if dimension is not None else self.embedding_dimension,
        )

    def setting_layers(self, environ: Mapping[str, str] | None = None) -> SettingLayers:
        if environ is None:
            return SettingLayers(defaults=self.raw)
        return SettingLayers(defaults=self.raw, environ=environ)

    def summary(self) -> dict[str, Any]:
        return {
            "embedding_provider": self.embedding_provider,
            "embedding_model": self.embedding_model or "(provider default)",
            "embedding_dimension": self.embedding_dimension or "(model default)",
            "embedding_batch_size": self.embedding_batch_size,
            "data_dir": str(self.data_dir),
            "max_collections": self.max_collections,
            "max_chunks": self.max_chunks,
        }


def log_configuration_summary(config: ContextConfig) -> None:
    """Log the effective configuration at INFO level."""
    logger.info("Configuration summary:")
    for key, value in config.summary().items():
        logger.info("  %s: %s", key, value)


__all__ = [
    "SettingLayers",
    "ContextConfig",
    "log_configuration_summary",
    "ENV_MAPPINGS",
]
