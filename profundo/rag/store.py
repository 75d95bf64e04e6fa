"""
Vector store for session chunks, backed by SQLite.

Stores chunk text, metadata and the embedding vector in one table. There is
no approximate nearest-neighbour index: recall scores every stored vector,
which stays fast for a personal archive of tens of thousands of chunks.

Architecture Pattern: This is the **Repository Pattern** - the indexer and
retriever only see append/scan/contains; the SQLite schema stays private to
this module.

Vectors are little-endian float32 blobs tagged with the model id and
dimension, so vectors from different embedding models are never mixed.
"""

import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional, Any

import numpy as np

from ..core.database import SQLiteDatabase
from ..core.errors import InvariantViolation
from ..core.models import Chunk, EmbeddedChunk

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chunk_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    position INTEGER NOT NULL,
    timestamp TEXT NOT NULL DEFAULT '',
    text TEXT NOT NULL,
    char_length INTEGER NOT NULL,
    model TEXT NOT NULL,
    dim INTEGER NOT NULL,
    embedding BLOB NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chunks_chunk_model ON chunks(chunk_id, model);
CREATE INDEX IF NOT EXISTS idx_chunks_session ON chunks(session_id);
CREATE INDEX IF NOT EXISTS idx_chunks_model ON chunks(model);
"""

VECTOR_DTYPE = np.dtype("<f4")


def encode_vector(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


class VectorStore:
    """
    Append-only store of embedded chunks.

    Args:
        db_path: SQLite file (e.g. <memory_dir>/profundo.sqlite)

    Example:
        store = VectorStore(paths.db_path)
        store.append(EmbeddedChunk(chunk, vector, model="openai/text-embedding-3-small"))
        for item in store.scan_all(model="openai/text-embedding-3-small"):
            ...
    """

    def __init__(self, db_path: Path):
        self.db = SQLiteDatabase(db_path)
        self.db.execute_script(SCHEMA)
        self._dims: Dict[str, int] = {}
        logger.debug(f"Opened vector store {db_path}")

    def _dimension_for(self, model: str) -> Optional[int]:
        if model not in self._dims:
            row = self.db.execute_one("SELECT dim FROM chunks WHERE model = ? LIMIT 1", (model,))
            if row is None:
                return None
            self._dims[model] = row["dim"]
        return self._dims[model]

    def append(self, item: EmbeddedChunk) -> int:
        """
        Store one embedded chunk (no dedupe; see contains()).

        Returns:
            Row id of the new entry

        Raises:
            InvariantViolation: If the vector's dimension differs from the
                vectors already stored for the same model
        """
        expected = self._dimension_for(item.model)
        if expected is not None and expected != item.dim:
            raise InvariantViolation(
                f"Vector dimension {item.dim} does not match stored dimension "
                f"{expected} for model {item.model}"
            )

        chunk = item.chunk
        created_at = datetime.now(timezone.utc).isoformat()
        row_id = self.db.execute_write(
            """
            INSERT INTO chunks (chunk_id, session_id, position, timestamp, text,
                                char_length, model, dim, embedding, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (chunk.chunk_id, chunk.session_id, chunk.position, chunk.timestamp or "",
             chunk.text, chunk.char_length, item.model, item.dim,
             encode_vector(item.vector), created_at),
        )
        self._dims[item.model] = item.dim
        item.row_id = row_id
        item.created_at = created_at
        return row_id

    def contains(self, chunk_id: str, model: str) -> bool:
        row = self.db.execute_one(
            "SELECT 1 FROM chunks WHERE chunk_id = ? AND model = ? LIMIT 1",
            (chunk_id, model),
        )
        return row is not None

    def delete_source(self, session_id: str, model: Optional[str] = None) -> int:
        """Remove a session's entries (all models unless one is given)"""
        if model is None:
            deleted = self.db.execute_write("DELETE FROM chunks WHERE session_id = ?", (session_id,))
        else:
            deleted = self.db.execute_write(
                "DELETE FROM chunks WHERE session_id = ? AND model = ?", (session_id, model)
            )
        self._dims.clear()
        if deleted:
            logger.info(f"Deleted {deleted} stored chunks for {session_id}")
        return deleted

    def scan_all(
        self,
        model: Optional[str] = None,
        since: Optional[date] = None,
        until: Optional[date] = None,
    ) -> Iterator[EmbeddedChunk]:
        """
        Iterate stored entries in insertion order.

        The whole scan is one SELECT, so it sees a consistent snapshot even
        while another process appends.

        Args:
            model: Only entries embedded with this model
            since: Only chunks dated on or after this day (inclusive)
            until: Only chunks dated on or before this day (inclusive)
        """
        clauses = []
        params = []
        if model is not None:
            clauses.append("model = ?")
            params.append(model)
        if since is not None:
            clauses.append("substr(timestamp, 1, 10) >= ?")
            params.append(since.isoformat())
        if until is not None:
            clauses.append("substr(timestamp, 1, 10) <= ?")
            params.append(until.isoformat())

        query = "SELECT * FROM chunks"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"

        with self.db.get_connection() as conn:
            for row in conn.execute(query, params):
                yield self._row_to_item(row)

    def _row_to_item(self, row) -> EmbeddedChunk:
        chunk = Chunk(
            session_id=row["session_id"],
            position=row["position"],
            text=row["text"],
            timestamp=row["timestamp"],
        )
        return EmbeddedChunk(
            chunk=chunk,
            vector=decode_vector(row["embedding"]),
            model=row["model"],
            row_id=row["id"],
            created_at=row["created_at"],
        )

    def count(self, model: Optional[str] = None) -> int:
        if model is None:
            row = self.db.execute_one("SELECT COUNT(*) AS count FROM chunks")
        else:
            row = self.db.execute_one("SELECT COUNT(*) AS count FROM chunks WHERE model = ?", (model,))
        return row["count"] if row else 0

    def stats_by_model(self) -> Dict[str, Dict[str, Any]]:
        """Entry count, session count and dimension per embedding model"""
        rows = self.db.execute(
            """
            SELECT model, dim, COUNT(*) AS chunks, COUNT(DISTINCT session_id) AS sessions
            FROM chunks GROUP BY model, dim ORDER BY model
            """
        )
        return {
            row["model"]: {"chunks": row["chunks"], "sessions": row["sessions"], "dim": row["dim"]}
            for row in rows
        }

    def stats(self) -> Dict[str, Any]:
        row = self.db.execute_one(
            """
            SELECT COUNT(*) AS chunks, COUNT(DISTINCT session_id) AS sessions,
                   MAX(created_at) AS last_appended
            FROM chunks
            """
        )
        return {
            "chunks": row["chunks"],
            "sessions": row["sessions"],
            "last_appended": row["last_appended"],
        }
