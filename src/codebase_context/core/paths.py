"""Path utilities - codebase identity normalization and validation."""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path

from .errors import PathError

logger = logging.getLogger(__name__)

_DRIVE_ROOT = re.compile(r"^[a-zA-Z]:/$")
_DRIVE_PREFIX = re.compile(r"^[a-zA-Z]:")


def is_windows() -> bool:
    return sys.platform == "win32"


def is_macos() -> bool:
    return sys.platform == "darwin"


def is_case_insensitive_fs() -> bool:
    """Whether the default filesystem of this platform ignores case."""
    return is_windows() or is_macos()


def normalize_path(input_path: str | Path) -> str:
    """Normalize a path into a codebase identity (``c:/aaa/bbb`` style).

    - Expands ``~`` and resolves to an absolute path (``.``/``..`` and symlinks)
    - Converts backslashes to forward slashes on Windows, and collapses a leading ``//`` elsewhere
    - Removes trailing slashes, keeping ``/`` and ``c:/`` roots
    - Lowercases the drive letter, and the whole path on case-insensitive platforms

    Examples:
        "C:\\aaa\\bbb\\" -> "c:/aaa/bbb" (on Windows)
        "/repo/src/"     -> "/repo/src"

    Raises:
        PathError: If the path is empty
    """
    raw = str(input_path)
    if not raw.strip():
        raise PathError("Codebase path must not be empty")

    if is_windows():
        raw = raw.replace("\\", "/")
    normalized = os.path.realpath(os.path.expanduser(raw))
    if is_windows():
        normalized = normalized.replace("\\", "/")
    elif normalized.startswith("//"):
        # POSIX keeps a leading "//" as implementation-defined; treat it as "/"
        normalized = "/" + normalized.lstrip("/")

    while len(normalized) > 1 and normalized.endswith("/"):
        if _DRIVE_ROOT.match(normalized):
            break
        normalized = normalized[:-1]

    if _DRIVE_PREFIX.match(normalized):
        normalized = normalized[0].lower() + normalized[1:]

    if is_case_insensitive_fs():
        normalized = normalized.lower()

    return normalized


def resolve_codebase(input_path: str | Path) -> str:
    """Normalize a codebase path and check it is an existing directory.

    Returns:
        The codebase identity

    Raises:
        PathError: If the path does not exist or is not a directory
    """
    identity = normalize_path(input_path)

    if not os.path.exists(identity):
        raise PathError(
            f"Path '{identity}' does not exist. Original input: '{input_path}'",
            context={"path": identity},
        )
    if not os.path.isdir(identity):
        raise PathError(
            f"Path '{identity}' is not a directory",
            context={"path": identity},
        )

    return identity


def truncate_content(content: str, max_length: int) -> str:
    """Truncate content to max_length characters, marking the cut with '...'."""
    if len(content) <= max_length:
        return content
    return content[:max_length] + "..."


__all__ = [
    "normalize_path",
    "resolve_codebase",
    "truncate_content",
    "is_windows",
    "is_macos",
    "is_case_insensitive_fs",
]
