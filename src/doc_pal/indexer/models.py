"""Data models for the indexer."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Document:
    """Represents a document in the index."""

    id: int | None = None
    path: str = ""  # Relative from the docs root
    title: str = ""
    mtime: float = 0.0
    content_hash: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Chunk:
    """Represents a stored chunk of content from a document."""

    id: int | None = None
    document_id: int = 0
    content: str = ""
    chunk_index: int = 0
    line_start: int = 1
    line_end: int = 1
    heading: str | None = None


@dataclass
class SearchResult:
    """Represents a nearest-neighbor search hit."""

    chunk_id: int
    document_id: int
    document_path: str
    content: str
    line_start: int
    line_end: int
    heading: str | None
    distance: float
    score: float


@dataclass
class IndexStats:
    """Row counts of a vector store."""

    documents: int = 0
    chunks: int = 0
    embeddings: int = 0


@dataclass
class IndexInfo:
    """Metadata recorded in a base's database when it is created."""

    name: str
    provider: str
    model: str
    embedding_dimension: int
    docs_path: str
    created_at: int
    last_updated: int


@dataclass
class IndexSummary:
    """Counters accumulated over an indexing run."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    chunks: int = 0

    @property
    def processed(self) -> int:
        return self.added + self.updated
