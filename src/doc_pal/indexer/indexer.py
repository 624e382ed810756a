"""Main indexer that turns a docs folder into chunks and embeddings."""

import logging
from pathlib import Path

from doc_pal.embeddings import EmbeddingProvider
from doc_pal.errors import NothingToIndex, ProviderError
from doc_pal.indexer.chunker import ChunkingOptions, chunk_markdown, extract_title
from doc_pal.indexer.models import Chunk, IndexSummary
from doc_pal.indexer.vector_store import VectorStore
from doc_pal.indexer.walker import read_snapshot, walk_docs_root

logger = logging.getLogger(__name__)


class Indexer:
    """
    Indexer that syncs a docs folder with a vector store.

    The filesystem is always the source of truth. A file is re-chunked and
    re-embedded only when its SHA-256 fingerprint changes (or when forced).

    Failure isolation:
        Any error while ingesting one file is logged and counted in the
        summary; the remaining files are still processed. The purge of old
        chunks and the insert of new ones commit together, so a failed file
        keeps its previous chunks.
    """

    def __init__(
        self,
        docs_root: Path,
        store: VectorStore,
        provider: EmbeddingProvider,
        options: ChunkingOptions | None = None,
    ):
        """
        Initialize the indexer.

        Args:
            docs_root: Directory containing the markdown files
            store: Initialized vector store of the base
            provider: Embedding provider matching the store's dimension
            options: Chunking options (defaults 1000/100/headings)
        """
        self.docs_root = docs_root
        self.store = store
        self.provider = provider
        self.options = options or ChunkingOptions()

    def discover(self) -> list[str]:
        """List the relative paths of all markdown files under the docs root."""
        return [info.relative_path for info in walk_docs_root(self.docs_root)]

    def full_index(self) -> IndexSummary:
        """
        Index every markdown file, ignoring stored fingerprints.

        Raises:
            NothingToIndex: If the docs root has no markdown files.
        """
        files = self.discover()
        if not files:
            raise NothingToIndex(f"No markdown files found in {self.docs_root}")

        logger.info("Indexing %d files from %s", len(files), self.docs_root)
        summary = IndexSummary()
        for relative_path in files:
            self.ingest_file(relative_path, summary, force=True)

        logger.info(
            "Index complete: %d files, %d chunks, %d errors",
            summary.processed,
            summary.chunks,
            summary.errors,
        )
        return summary

    def update(self, force: bool = False) -> IndexSummary:
        """
        Bring the store in line with the docs folder.

        Chunks of vanished files are purged. Their document rows stay with an
        empty fingerprint, so a file restored later is indexed again.
        Unchanged files are skipped unless ``force`` is set.
        """
        files = self.discover()
        current = set(files)
        summary = IndexSummary()

        logger.info("Updating index: %d files found in %s", len(files), self.docs_root)

        for doc in self.store.list_documents():
            if doc.path in current:
                continue
            try:
                with self.store.transaction():
                    removed = self.store.delete_document_chunks(doc.id)  # type: ignore[arg-type]
                    if doc.content_hash:
                        # A restored file must not match the old fingerprint
                        self.store.upsert_document(doc.path, doc.title, doc.mtime, "")
            except Exception as e:
                summary.errors += 1
                logger.warning("Failed to remove %s: %s", doc.path, e)
                continue
            if removed:
                summary.deleted += 1
                logger.info("Removed %s (%d chunks)", doc.path, removed)

        for relative_path in files:
            self.ingest_file(relative_path, summary, force=force)

        logger.info(
            "Update complete: %d added, %d updated, %d deleted, %d skipped, %d errors",
            summary.added,
            summary.updated,
            summary.deleted,
            summary.skipped,
            summary.errors,
        )
        return summary

    def ingest_file(self, relative_path: str, summary: IndexSummary, force: bool = False) -> None:
        """Index a single file, recording the outcome in ``summary``."""
        try:
            self._ingest_file(relative_path, summary, force)
        except Exception as e:
            summary.errors += 1
            logger.warning("Failed to index %s: %s", relative_path, e)

    def _ingest_file(self, relative_path: str, summary: IndexSummary, force: bool) -> None:
        file_path = self.docs_root / relative_path
        snapshot = read_snapshot(file_path)

        if not force and not self.store.document_needs_update(relative_path, snapshot.content_hash):
            summary.skipped += 1
            logger.debug("Unchanged: %s", relative_path)
            return

        content = snapshot.content.decode("utf-8")
        title = extract_title(content, file_path.name)
        chunks = chunk_markdown(content, self.options)

        # Embed before touching the store so a provider failure changes nothing
        vectors = self.provider.embed_batch([c.content for c in chunks]) if chunks else []
        if len(vectors) != len(chunks):
            raise ProviderError(
                f"Provider returned {len(vectors)} embeddings for {len(chunks)} chunks"
            )

        existing = self.store.get_document_by_path(relative_path)
        with self.store.transaction():
            if existing is not None:
                self.store.delete_document_chunks(existing.id)  # type: ignore[arg-type]
            document_id = self.store.upsert_document(
                relative_path, title, snapshot.mtime, snapshot.content_hash
            )
            for chunk, vector in zip(chunks, vectors):
                self.store.add_chunk(
                    Chunk(
                        document_id=document_id,
                        content=chunk.content,
                        chunk_index=chunk.index,
                        line_start=chunk.line_start,
                        line_end=chunk.line_end,
                        heading=chunk.heading,
                    ),
                    vector,
                )

        if existing is not None:
            summary.updated += 1
        else:
            summary.added += 1
        summary.chunks += len(chunks)

        if not chunks:
            logger.warning("%s: no content to index", relative_path)
        else:
            logger.info("%s: %d chunks", relative_path, len(chunks))
