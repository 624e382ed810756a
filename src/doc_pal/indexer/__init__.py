"""
Indexer module for ai-doc-pal.

This module handles synchronization between a markdown docs folder and the
SQLite vector store of a documentation base.
"""

from doc_pal.indexer.chunker import ChunkingOptions, chunk_markdown, extract_title
from doc_pal.indexer.indexer import Indexer
from doc_pal.indexer.models import (
    Chunk,
    Document,
    IndexInfo,
    IndexStats,
    IndexSummary,
    SearchResult,
)
from doc_pal.indexer.vector_store import VectorStore
from doc_pal.indexer.walker import FileInfo, walk_docs_root

__all__ = [
    "Chunk",
    "ChunkingOptions",
    "Document",
    "FileInfo",
    "IndexInfo",
    "IndexStats",
    "IndexSummary",
    "Indexer",
    "SearchResult",
    "VectorStore",
    "chunk_markdown",
    "extract_title",
    "walk_docs_root",
]
