"""User configuration management for codebase-context.

Provides persistent configuration via ~/.context/config.yaml
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Thread lock for config file operations
_config_lock = threading.Lock()

CONFIG_DIR = Path.home() / ".context"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    # Embedding settings
    "embedding_provider": "openai",
    "embedding_model": None,  # Provider default if not set
    "embedding_dimension": None,  # Matryoshka override, provider default if not set
    "embedding_batch_size": 100,

    # Provider location hints (secrets belong in env vars or env_file)
    "openai_base_url": None,
    "vertex_project": None,
    "vertex_location": None,
    "ollama_host": None,

    # Storage
    "data_dir": "~/.context",
    "max_collections": 50,

    # Chunking
    "max_chunks": 450_000,
    "max_chunk_chars": 2500,
    "chunk_overlap_lines": 5,

    # API key location
    "env_file": None,
}

CONFIG_TEMPLATE = """# codebase-context configuration
# Priority: CLI args > env vars > this file > defaults

# ============================================================================
# Embedding Settings
# ============================================================================
# Provider: openai, vertexai, ollama, litellm
embedding_provider: {embedding_provider}

# Model name (null = provider default)
# Examples: text-embedding-3-small, gemini-embedding-001, nomic-embed-text
embedding_model: {embedding_model}

# Output dimensionality for Matryoshka models (null = model default)
# gemini-embedding-001 supports 3072, 1536, 768, 256
embedding_dimension: {embedding_dimension}

# Texts per embedding request (default: 100)
embedding_batch_size: {embedding_batch_size}

# ============================================================================
# Provider Location
# ============================================================================
openai_base_url: {openai_base_url}
vertex_project: {vertex_project}
vertex_location: {vertex_location}
ollama_host: {ollama_host}

# ============================================================================
# Storage
# ============================================================================
# Snapshot and vector collections live here
data_dir: {data_dir}

# Maximum number of indexed codebases
max_collections: {max_collections}

# ============================================================================
# Chunking
# ============================================================================
# Stop indexing a codebase after this many chunks
max_chunks: {max_chunks}
max_chunk_chars: {max_chunk_chars}
chunk_overlap_lines: {chunk_overlap_lines}

# ============================================================================
# API Key Location
# ============================================================================
# Path to .env file with API keys (optional)
env_file: {env_file}
"""

# key -> (min, max); values outside fall back to the default
_INT_BOUNDS: dict[str, tuple[int, int]] = {
    "embedding_batch_size": (1, 2048),
    "max_collections": (1, 10_000),
    "max_chunks": (1, 10_000_000),
    "max_chunk_chars": (200, 100_000),
    "chunk_overlap_lines": (0, 100),
}


def ensure_config_dir() -> Path:
    """Ensure config directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    return CONFIG_DIR


def _validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate and sanitize configuration values.

    Args:
        config: Raw configuration dictionary

    Returns:
        Validated configuration with safe defaults for invalid values
    """
    validated = config.copy()

    for key, (low, high) in _INT_BOUNDS.items():
        if key not in validated:
            continue
        val = validated[key]
        if isinstance(val, bool) or not isinstance(val, int) or val < low or val > high:
            logger.warning("Invalid %s %s, using default", key, val)
            validated[key] = DEFAULT_CONFIG[key]

    dim = validated.get("embedding_dimension")
    if dim is not None and (isinstance(dim, bool) or not isinstance(dim, int) or dim < 1):
        logger.warning("Invalid embedding_dimension %s, using model default", dim)
        validated["embedding_dimension"] = None

    provider = validated.get("embedding_provider")
    if not isinstance(provider, str) or not provider:
        logger.warning("Invalid embedding_provider %s, using default", provider)
        validated["embedding_provider"] = DEFAULT_CONFIG["embedding_provider"]

    return validated


def load_config() -> dict[str, Any]:
    """Load user configuration from file.

    Returns default config if file doesn't exist or can't be parsed.
    Thread-safe via _config_lock.
    """
    with _config_lock:
        if not CONFIG_FILE.exists():
            return DEFAULT_CONFIG.copy()

        try:
            with open(CONFIG_FILE, encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            return DEFAULT_CONFIG.copy()
        except (yaml.YAMLError, PermissionError, UnicodeDecodeError) as e:
            logger.warning("Failed to load config from %s: %s", CONFIG_FILE, e)
            return DEFAULT_CONFIG.copy()

        if not isinstance(user_config, dict):
            logger.warning("Ignoring config %s: expected a mapping", CONFIG_FILE)
            return DEFAULT_CONFIG.copy()

        config = DEFAULT_CONFIG.copy()
        config.update(user_config)
        return _validate_config(config)


def save_config(config: dict[str, Any], use_template: bool = True) -> None:
    """Save configuration to file.

    Args:
        config: Configuration dictionary
        use_template: If True, saves with full template and comments
    """
    ensure_config_dir()

    if use_template:
        full_config = DEFAULT_CONFIG.copy()
        full_config.update(config)

        def fmt(val):
            if val is None:
                return "null"
            elif isinstance(val, bool):
                return "true" if val else "false"
            return str(val)

        content = CONFIG_TEMPLATE.format(**{key: fmt(full_config.get(key)) for key in DEFAULT_CONFIG})
        extra = {k: v for k, v in config.items() if k not in DEFAULT_CONFIG}
        if extra:
            content += "\n" + yaml.dump(extra, default_flow_style=False, sort_keys=False)
    else:
        # Simple mode: only save non-default values
        to_save = {
            key: value
            for key, value in config.items()
            if key not in DEFAULT_CONFIG or value != DEFAULT_CONFIG[key]
        }
        content = yaml.dump(to_save, default_flow_style=False, sort_keys=False)

    _atomic_write(CONFIG_FILE, content)


def _atomic_write(path: Path, content: str) -> None:
    """Write content to file atomically using temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            f.write(content)
            temp_path = Path(f.name)

        temp_path.replace(path)
    except Exception:
        if temp_path and temp_path.exists():
            temp_path.unlink()
        raise


def load_env_file(env_path: str | Path | None = None) -> dict[str, str]:
    """Load environment variables from a .env file.

    Existing environment variables are never overwritten.

    Args:
        env_path: Path to .env file. If None, uses config's env_file setting.

    Returns:
        Dictionary of loaded environment variables.
    """
    if env_path is None:
        env_path = load_config().get("env_file")

    if not env_path:
        return {}

    env_path = Path(env_path).expanduser().resolve()
    if not env_path.exists():
        return {}

    loaded = {}
    try:
        with open(env_path, encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):]
                if "=" in line:
                    key, _, value = line.partition("=")
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    if key and value and key.replace("_", "").isalnum():
                        os.environ.setdefault(key, value)
                        loaded[key] = value
                    elif key:
                        logger.debug("Skipping invalid env var name at line %d: %s", line_num, key)
    except PermissionError:
        logger.warning("Permission denied reading env file: %s", env_path)
    except UnicodeDecodeError as e:
        logger.warning("Encoding error in env file %s: %s", env_path, e)

    return loaded


def set_config_value(key: str, value: Any) -> dict[str, Any]:
    """Set a single config value and persist it.

    Returns:
        The saved configuration
    """
    config = load_config()
    config[key] = value
    config = _validate_config(config)
    save_config(config)
    return config


def parse_config_value(raw: str) -> Any:
    """Parse a CLI-provided value with YAML scalar rules ("null", "3", "true")."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw


__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE",
    "DEFAULT_CONFIG",
    "CONFIG_TEMPLATE",
    "load_config",
    "save_config",
    "load_env_file",
    "set_config_value",
    "parse_config_value",
]
