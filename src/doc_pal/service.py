"""Query service behind the MCP tools: semantic search, file reads and listings."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from doc_pal.embeddings import EmbeddingProvider
from doc_pal.errors import NotFound, PathTraversal
from doc_pal.indexer import SearchResult, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5
RESULT_SEPARATOR = "\n\n---\n\n"


@dataclass
class ToolResult:
    """Human-readable tool output plus an error flag."""

    text: str
    is_error: bool = False


def format_search_result(result: SearchResult, position: int) -> str:
    """Format one hit as a markdown block with location and relevance."""
    heading = f" > {result.heading}" if result.heading else ""
    location = (
        f"**[{position}] {result.document_path}{heading}** "
        f"(lines {result.line_start}-{result.line_end})"
    )
    score = f"_Relevance: {result.score * 100:.1f}%_"
    return f"{location}\n{score}\n\n{result.content}"


class QueryService:
    """Answers agent queries against one documentation base.

    The embedding provider is built on first search, so listing and reading
    files work even when the backend is down.
    """

    def __init__(
        self,
        store: VectorStore,
        docs_root: Path,
        provider_factory: Callable[[], EmbeddingProvider],
    ):
        self.store = store
        self.docs_root = docs_root
        self._provider_factory = provider_factory
        self._provider: EmbeddingProvider | None = None

    def _get_provider(self) -> EmbeddingProvider:
        if self._provider is None:
            self._provider = self._provider_factory()
        return self._provider

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> ToolResult:
        """Embed the query and return the closest chunks."""
        try:
            query_vector = self._get_provider().embed(query)
            results = self.store.search(query_vector, k=limit)
        except Exception as e:
            logger.warning("Search failed for %r: %s", query, e)
            return ToolResult(f"Search failed: {e}", is_error=True)

        if not results:
            return ToolResult("No relevant documentation found for your query.")

        formatted = [format_search_result(r, i) for i, r in enumerate(results, start=1)]
        return ToolResult(
            f"Found {len(results)} relevant sections:\n\n{RESULT_SEPARATOR.join(formatted)}"
        )

    def resolve_path(self, file_path: str) -> Path:
        """
        Resolve a path relative to the docs root.

        Raises:
            PathTraversal: If the canonical path escapes the docs root.
            NotFound: If no file exists there.
        """
        root = self.docs_root.resolve()
        try:
            resolved = (root / file_path).resolve()
        except (OSError, RuntimeError) as e:
            raise NotFound(f"Invalid path {file_path}: {e}") from e

        if resolved != root and root not in resolved.parents:
            logger.warning("Refused path outside docs root: %s", file_path)
            raise PathTraversal(
                "Access denied: File path must be within documentation directory"
            )

        if not resolved.is_file():
            raise NotFound(f"File not found: {file_path}")

        return resolved

    def read_file(self, file_path: str) -> ToolResult:
        """Return the full content of a documentation file."""
        try:
            resolved = self.resolve_path(file_path)
            content = resolved.read_text(encoding="utf-8")
        except (PathTraversal, NotFound) as e:
            return ToolResult(str(e), is_error=True)
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(f"Failed to read file: {e}", is_error=True)

        return ToolResult(f"# {file_path}\n\n{content}")

    def list_files(self) -> ToolResult:
        """List the indexed documents."""
        try:
            documents = self.store.list_documents()
        except Exception as e:
            logger.warning("Listing documents failed: %s", e)
            return ToolResult(f"Failed to list files: {e}", is_error=True)

        if not documents:
            return ToolResult("No documentation files indexed.")

        lines = [f"- {d.path} ({d.title})" if d.title else f"- {d.path}" for d in documents]
        return ToolResult(f"Documentation files ({len(documents)}):\n\n" + "\n".join(lines))
