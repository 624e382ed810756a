"""File walker for discovering markdown files under a docs root."""

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

MARKDOWN_SUFFIXES = {".md", ".mdx"}

# Version control and dependency directories are never indexed
EXCLUDED_DIRS = {".git", "node_modules"}


@dataclass
class FileInfo:
    """Information about a discovered file."""

    path: Path  # Absolute path
    relative_path: str  # Relative to the docs root, POSIX separators
    filename: str


@dataclass
class FileSnapshot:
    """Content and change-detection data read from a file."""

    content: bytes
    content_hash: str
    mtime: float


def compute_hash(content: bytes) -> str:
    """Compute SHA-256 hash of content."""
    return hashlib.sha256(content).hexdigest()


def read_snapshot(path: Path) -> FileSnapshot:
    """Read a file and compute its fingerprint and modification time."""
    content = path.read_bytes()
    return FileSnapshot(
        content=content,
        content_hash=compute_hash(content),
        mtime=path.stat().st_mtime,
    )


def _is_excluded(relative_parts: tuple[str, ...]) -> bool:
    return any(part in EXCLUDED_DIRS or part.startswith(".") for part in relative_parts)


def walk_docs_root(docs_root: Path) -> Iterator[FileInfo]:
    """
    Walk the docs root and yield FileInfo for each .md/.mdx file, sorted by path.

    Hidden files and directories, .git and node_modules are skipped.
    """
    if not docs_root.is_dir():
        return

    for file_path in sorted(docs_root.rglob("*")):
        if file_path.suffix not in MARKDOWN_SUFFIXES:
            continue
        if not file_path.is_file():
            continue

        relative = file_path.relative_to(docs_root)
        if _is_excluded(relative.parts):
            continue

        yield FileInfo(
            path=file_path,
            relative_path=relative.as_posix(),
            filename=file_path.name,
        )
