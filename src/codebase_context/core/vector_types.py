"""Vector index types - code chunks, search results, and the line chunker."""

from __future__ import annotations

import hashlib
from dataclasses import asdict, dataclass
from pathlib import PurePosixPath

LANGUAGE_BY_EXTENSION = {
    ".py": "python", ".ts": "typescript", ".tsx": "typescript",
    ".js": "javascript", ".jsx": "javascript", ".java": "java",
    ".c": "c", ".h": "c", ".cpp": "cpp", ".hpp": "cpp", ".cs": "csharp",
    ".go": "go", ".rs": "rust", ".php": "php", ".rb": "ruby",
    ".swift": "swift", ".kt": "kotlin", ".scala": "scala",
    ".m": "objective-c", ".mm": "objective-c",
    ".md": "markdown", ".markdown": "markdown", ".ipynb": "jupyter",
}


@dataclass
class CodeChunk:
    """A window of lines from one source file."""
    id: str
    text: str
    relative_path: str
    start_line: int
    end_line: int
    language: str = "text"

    @property
    def file_extension(self) -> str:
        return PurePosixPath(self.relative_path).suffix.lower()

    def to_document(self) -> str:
        """Convert to document string for embedding."""
        return f"# File: {self.relative_path}:{self.start_line}-{self.end_line}\n\n{self.text}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CodeChunk":
        return cls(**data)


@dataclass
class SearchResult:
    """A search result with relevance score."""
    chunk: CodeChunk
    score: float

    def to_dict(self) -> dict:
        return {
            "file": self.chunk.relative_path,
            "start_line": self.chunk.start_line,
            "end_line": self.chunk.end_line,
            "language": self.chunk.language,
            "score": self.score,
            "text": self.chunk.text[:500],
        }


def _chunk_id(relative_path: str, start: int, end: int, text: str) -> str:
    digest = hashlib.sha256(f"{relative_path}:{start}:{end}:{text}".encode()).hexdigest()
    return f"chunk_{digest[:16]}"


def chunk_text(
    text: str,
    relative_path: str,
    max_chars: int = 2500,
    overlap_lines: int = 5,
) -> list[CodeChunk]:
    """Split file content into line windows of at most ``max_chars``.

    Consecutive windows share up to ``overlap_lines`` trailing lines. A
    single line longer than ``max_chars`` is hard-split on its own.
    """
    if not text.strip():
        return []

    language = LANGUAGE_BY_EXTENSION.get(PurePosixPath(relative_path).suffix.lower(), "text")
    lines = text.split("\n")
    windows: list[tuple[str, int, int]] = []

    current: list[tuple[int, str]] = []
    current_size = 0

    def flush() -> None:
        if current:
            windows.append(("\n".join(line for _, line in current), current[0][0], current[-1][0]))

    for lineno, line in enumerate(lines, start=1):
        line_size = len(line) + 1

        if line_size > max_chars:
            flush()
            current, current_size = [], 0
            for j in range(0, len(line), max_chars):
                windows.append((line[j:j + max_chars], lineno, lineno))
            continue

        if current_size + line_size > max_chars and current:
            flush()
            carried = current[-overlap_lines:] if overlap_lines > 0 else []
            # Drop overlap that would not leave room for the new line
            while carried and sum(len(l) + 1 for _, l in carried) + line_size > max_chars:
                carried = carried[1:]
            current = list(carried)
            current_size = sum(len(l) + 1 for _, l in current)

        current.append((lineno, line))
        current_size += line_size

    flush()

    return [
        CodeChunk(
            id=_chunk_id(relative_path, start, end, body),
            text=body,
            relative_path=relative_path,
            start_line=start,
            end_line=end,
            language=language,
        )
        for body, start, end in windows
        if body.strip()
    ]


__all__ = ["CodeChunk", "SearchResult", "chunk_text", "LANGUAGE_BY_EXTENSION"]
