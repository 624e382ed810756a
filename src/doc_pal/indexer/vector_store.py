"""SQLite storage for documents, chunks and their embeddings."""

import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import numpy as np

from doc_pal.errors import DimensionMismatch, IntegrityError
from doc_pal.indexer.models import Chunk, Document, IndexInfo, IndexStats, SearchResult

SCHEMA_SQL = """
-- ai-doc-pal Index Schema v1.0
-- One database per documentation base. Deletes cascade explicitly in code.

PRAGMA journal_mode = WAL;

-- Metadata table for the base itself
CREATE TABLE IF NOT EXISTS db_info (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Documents table
CREATE TABLE IF NOT EXISTS documents (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path     TEXT NOT NULL UNIQUE,
    title         TEXT,
    last_modified REAL NOT NULL,
    file_hash     TEXT NOT NULL,
    created_at    TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_documents_file_hash ON documents(file_hash);

-- Chunks table (text chunks from documents)
CREATE TABLE IF NOT EXISTS chunks (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id INTEGER NOT NULL,
    content     TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    line_start  INTEGER NOT NULL,
    line_end    INTEGER NOT NULL,
    heading     TEXT,
    FOREIGN KEY (document_id) REFERENCES documents(id)
);

CREATE INDEX IF NOT EXISTS idx_chunks_document ON chunks(document_id);

-- Embeddings, one per chunk, float32 little-endian
CREATE TABLE IF NOT EXISTS embeddings (
    chunk_id  INTEGER PRIMARY KEY,
    dimension INTEGER NOT NULL,
    vector    BLOB NOT NULL,
    FOREIGN KEY (chunk_id) REFERENCES chunks(id)
);

INSERT OR IGNORE INTO db_info (key, value) VALUES ('schema_version', '1.0');
"""

# Keys of the index metadata stored in db_info
INFO_KEYS = {
    "name": "name",
    "provider": "provider",
    "model": "model",
    "embedding_dimension": "embeddingDimension",
    "docs_path": "docsPath",
    "created_at": "createdAt",
    "last_updated": "lastUpdated",
}


def _vec_to_blob(vec: np.ndarray) -> bytes:
    return np.asarray(vec, dtype="<f4").ravel().tobytes()


def _blob_to_vec(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f4")


class VectorStore:
    """
    SQLite database holding one documentation base.

    Nearest-neighbor search is exact: every stored vector is compared to the
    query with numpy.
    """

    def __init__(self, db_path: Path, embedding_dimension: int):
        """Initialize the store (no connection is opened until first use)."""
        if embedding_dimension <= 0:
            raise ValueError(f"Embedding dimension must be positive, got {embedding_dimension}")
        self.db_path = db_path
        self.embedding_dimension = embedding_dimension
        self._local = threading.local()
        self._write_lock = threading.RLock()

    def __enter__(self) -> "VectorStore":
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA foreign_keys = ON")
        return self._local.conn

    def _in_transaction(self) -> bool:
        return getattr(self._local, "tx_depth", 0) > 0

    @contextmanager
    def _read_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for read operations."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    @contextmanager
    def _write_cursor(self) -> Iterator[sqlite3.Cursor]:
        """Get a cursor for write operations with locking.

        Inside transaction() the commit/rollback is left to the transaction.
        """
        with self._write_lock:
            conn = self._get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
                if not self._in_transaction():
                    conn.commit()
            except Exception:
                if not self._in_transaction():
                    conn.rollback()
                raise
            finally:
                cursor.close()

    @contextmanager
    def transaction(self) -> Iterator["VectorStore"]:
        """Group several write operations into one commit.

        Everything written inside the block is rolled back if it raises.
        """
        with self._write_lock:
            conn = self._get_connection()
            self._local.tx_depth = getattr(self._local, "tx_depth", 0) + 1
            try:
                yield self
            except BaseException:
                self._local.tx_depth -= 1
                if self._local.tx_depth == 0:
                    conn.rollback()
                raise
            else:
                self._local.tx_depth -= 1
                if self._local.tx_depth == 0:
                    conn.commit()

    def initialize(self) -> None:
        """Initialize the database schema and pin the embedding dimension.

        Raises:
            DimensionMismatch: If the file was created with another dimension.
        """
        with self._write_cursor() as cursor:
            cursor.executescript(SCHEMA_SQL)

        stored = self.get_info("embeddingDimension")
        if stored is None:
            self.set_info("embeddingDimension", str(self.embedding_dimension))
        elif int(stored) != self.embedding_dimension:
            raise DimensionMismatch(int(stored), self.embedding_dimension)

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    # Metadata operations

    def set_info(self, key: str, value: str) -> None:
        """Store a metadata value."""
        with self._write_cursor() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO db_info (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_info(self, key: str) -> str | None:
        """Get a metadata value."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT value FROM db_info WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row["value"] if row else None

    def set_index_info(self, info: IndexInfo) -> None:
        """Store all index metadata at once."""
        with self.transaction():
            for attr, key in INFO_KEYS.items():
                self.set_info(key, str(getattr(info, attr)))

    def get_index_info(self) -> IndexInfo | None:
        """Get the index metadata, or None if the base was never named."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT key, value FROM db_info")
            info = {row["key"]: row["value"] for row in cursor.fetchall()}

        if "name" not in info:
            return None

        return IndexInfo(
            name=info["name"],
            provider=info.get("provider", "unknown"),
            model=info.get("model", "unknown"),
            embedding_dimension=int(info.get("embeddingDimension", self.embedding_dimension)),
            docs_path=info.get("docsPath", ""),
            created_at=int(info.get("createdAt", "0")),
            last_updated=int(info.get("lastUpdated", "0")),
        )

    # Document operations

    def upsert_document(self, path: str, title: str, mtime: float, file_hash: str) -> int:
        """Insert or update a document, returning its ID."""
        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO documents (file_path, title, last_modified, file_hash)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(file_path) DO UPDATE SET
                    title = excluded.title,
                    last_modified = excluded.last_modified,
                    file_hash = excluded.file_hash,
                    updated_at = datetime('now')
                """,
                (path, title, mtime, file_hash),
            )
            cursor.execute("SELECT id FROM documents WHERE file_path = ?", (path,))
            return cursor.fetchone()["id"]

    def document_needs_update(self, path: str, file_hash: str) -> bool:
        """True if the path is unknown or its stored hash differs."""
        with self._read_cursor() as cursor:
            cursor.execute(
                "SELECT file_hash FROM documents WHERE file_path = ?",
                (path,),
            )
            row = cursor.fetchone()
            return row is None or row["file_hash"] != file_hash

    def get_document_by_path(self, path: str) -> Document | None:
        """Get a document by its relative path."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM documents WHERE file_path = ?", (path,))
            row = cursor.fetchone()
            if row:
                return self._row_to_document(row)
            return None

    def list_documents(self) -> list[Document]:
        """List all documents."""
        with self._read_cursor() as cursor:
            cursor.execute("SELECT * FROM documents ORDER BY file_path")
            return [self._row_to_document(row) for row in cursor.fetchall()]

    def _row_to_document(self, row: sqlite3.Row) -> Document:
        """Convert a database row to a Document."""
        return Document(
            id=row["id"],
            path=row["file_path"],
            title=row["title"] or "",
            mtime=row["last_modified"],
            content_hash=row["file_hash"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # Chunk operations

    def delete_document_chunks(self, document_id: int) -> int:
        """Delete all chunks and embeddings of a document, keeping the document row.

        Returns the number of chunks removed.
        """
        with self._write_cursor() as cursor:
            cursor.execute(
                """DELETE FROM embeddings
                WHERE chunk_id IN (SELECT id FROM chunks WHERE document_id = ?)""",
                (document_id,),
            )
            cursor.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            return cursor.rowcount

    def add_chunk(self, chunk: Chunk, embedding: Sequence[float] | np.ndarray) -> int:
        """Insert a chunk together with its embedding, returning the chunk ID.

        Raises:
            DimensionMismatch: If the embedding length differs from the index dimension.
        """
        vector = np.asarray(embedding, dtype=np.float32).ravel()
        if vector.size != self.embedding_dimension:
            raise DimensionMismatch(self.embedding_dimension, int(vector.size))

        with self._write_cursor() as cursor:
            cursor.execute(
                """INSERT INTO chunks
                (document_id, content, chunk_index, line_start, line_end, heading)
                VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    chunk.document_id,
                    chunk.content,
                    chunk.chunk_index,
                    chunk.line_start,
                    chunk.line_end,
                    chunk.heading,
                ),
            )
            chunk_id = cursor.lastrowid
            cursor.execute(
                "INSERT INTO embeddings (chunk_id, dimension, vector) VALUES (?, ?, ?)",
                (chunk_id, int(vector.size), _vec_to_blob(vector)),
            )
            return chunk_id  # type: ignore

    def get_chunks(self, document_id: int) -> list[Chunk]:
        """Get all chunks for a document."""
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT * FROM chunks
                WHERE document_id = ?
                ORDER BY chunk_index""",
                (document_id,),
            )
            return [
                Chunk(
                    id=row["id"],
                    document_id=row["document_id"],
                    content=row["content"],
                    chunk_index=row["chunk_index"],
                    line_start=row["line_start"],
                    line_end=row["line_end"],
                    heading=row["heading"],
                )
                for row in cursor.fetchall()
            ]

    # Search operations

    def search(self, query_vector: Sequence[float] | np.ndarray, k: int = 5) -> list[SearchResult]:
        """
        Find the k chunks whose embeddings are closest to the query.

        Distance is Euclidean; ties keep chunk insertion order. Each result
        carries score = 1 / (1 + distance), so 1.0 means an exact match.

        Raises:
            ValueError: If k < 1.
            DimensionMismatch: If the query length differs from the index dimension.
        """
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")

        query = np.asarray(query_vector, dtype=np.float32).ravel()
        if query.size != self.embedding_dimension:
            raise DimensionMismatch(self.embedding_dimension, int(query.size))

        with self._read_cursor() as cursor:
            cursor.execute("SELECT chunk_id, vector FROM embeddings ORDER BY chunk_id")
            rows = cursor.fetchall()

        if not rows:
            return []

        chunk_ids = [row["chunk_id"] for row in rows]
        matrix = np.vstack([_blob_to_vec(row["vector"]) for row in rows])
        distances = np.linalg.norm(matrix - query, axis=1)
        nearest = np.argsort(distances, kind="stable")[:k]

        selected = [chunk_ids[i] for i in nearest]
        placeholders = ", ".join("?" for _ in selected)
        with self._read_cursor() as cursor:
            cursor.execute(
                f"""SELECT
                    c.id as chunk_id,
                    c.document_id,
                    c.content,
                    c.line_start,
                    c.line_end,
                    c.heading,
                    d.file_path
                FROM chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE c.id IN ({placeholders})""",
                selected,
            )
            rows_by_id = {row["chunk_id"]: row for row in cursor.fetchall()}

        results = []
        for i in nearest:
            row = rows_by_id[chunk_ids[i]]
            distance = float(distances[i])
            results.append(
                SearchResult(
                    chunk_id=row["chunk_id"],
                    document_id=row["document_id"],
                    document_path=row["file_path"],
                    content=row["content"],
                    line_start=row["line_start"],
                    line_end=row["line_end"],
                    heading=row["heading"],
                    distance=distance,
                    score=1.0 / (1.0 + distance),
                )
            )
        return results

    # Statistics

    def get_stats(self) -> IndexStats:
        """Count documents, chunks and embeddings."""
        with self._read_cursor() as cursor:
            counts = {}
            for table in ("documents", "chunks", "embeddings"):
                cursor.execute(f"SELECT COUNT(*) AS count FROM {table}")
                counts[table] = cursor.fetchone()["count"]
        return IndexStats(**counts)

    def verify_integrity(self) -> None:
        """Check that every chunk has exactly one embedding of the index dimension.

        Raises:
            IntegrityError: If the pairing is broken.
        """
        with self._read_cursor() as cursor:
            cursor.execute(
                """SELECT COUNT(*) AS count FROM chunks c
                LEFT JOIN embeddings e ON e.chunk_id = c.id
                WHERE e.chunk_id IS NULL"""
            )
            orphan_chunks = cursor.fetchone()["count"]
            cursor.execute(
                """SELECT COUNT(*) AS count FROM embeddings e
                LEFT JOIN chunks c ON c.id = e.chunk_id
                WHERE c.id IS NULL"""
            )
            orphan_embeddings = cursor.fetchone()["count"]
            cursor.execute(
                "SELECT COUNT(*) AS count FROM embeddings WHERE dimension != ?",
                (self.embedding_dimension,),
            )
            wrong_dimension = cursor.fetchone()["count"]

        if orphan_chunks or orphan_embeddings or wrong_dimension:
            raise IntegrityError(
                f"Store {self.db_path} is inconsistent: {orphan_chunks} chunks without "
                f"embedding, {orphan_embeddings} embeddings without chunk, "
                f"{wrong_dimension} embeddings of the wrong dimension"
            )
