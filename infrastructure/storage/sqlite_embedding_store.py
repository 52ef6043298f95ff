"""Persistent knowledge store in SQLite."""
from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence
from uuid import uuid4

from domain.entities import EmbeddedChunk, EmbeddingRecord, SimilarityResult
from domain.errors import StoreUnavailable
from domain.interfaces import KnowledgeStore
from infrastructure.storage.ranking import as_matrix, rank

logger = logging.getLogger(__name__)


class SqliteEmbeddingStore(KnowledgeStore):
    """Stores every record in SQLite and ranks them in-process.

    Each ``insert`` is a single transaction, so a failing row rolls back
    the whole batch.
    """

    def __init__(
        self,
        *,
        db_path: str | Path = "contextchat.db",
        dimension: int | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._ensure_schema()
        except (OSError, sqlite3.Error) as exc:
            raise StoreUnavailable(f"Cannot open knowledge store at {self._db_path}: {exc}") from exc

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS embeddings (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    content TEXT NOT NULL CHECK (length(trim(content)) > 0),
                    embedding TEXT NOT NULL,
                    dimension INTEGER NOT NULL
                )
                """
            )

    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> list[EmbeddingRecord]:
        if not chunks:
            return []
        return await asyncio.to_thread(self._insert, list(chunks))

    def _insert(self, chunks: list[EmbeddedChunk]) -> list[EmbeddingRecord]:
        rows = as_matrix([chunk.embedding for chunk in chunks], self._dimension)
        records = [
            EmbeddingRecord(id=uuid4().hex, content=chunk.content, embedding=row.tolist())
            for chunk, row in zip(chunks, rows)
        ]
        try:
            with self._transaction() as conn:
                stored_dimension = self._stored_dimension(conn)
                if stored_dimension is not None and stored_dimension != rows.shape[1]:
                    raise StoreUnavailable(
                        f"Store holds {stored_dimension}-dimensional embeddings, got {rows.shape[1]}."
                    )
                conn.executemany(
                    "INSERT INTO embeddings (id, content, embedding, dimension) VALUES (?, ?, ?, ?)",
                    [
                        (record.id, record.content, json.dumps(record.embedding), len(record.embedding))
                        for record in records
                    ],
                )
        except sqlite3.Error as exc:
            logger.error("Insert of %d records into %s rolled back: %s", len(records), self._db_path, exc)
            raise StoreUnavailable(f"Knowledge store insert failed: {exc}") from exc
        logger.debug("Stored %d records in %s", len(records), self._db_path)
        return records

    @staticmethod
    def _stored_dimension(conn: sqlite3.Connection) -> int | None:
        row = conn.execute("SELECT dimension FROM embeddings LIMIT 1").fetchone()
        return int(row[0]) if row is not None else None

    async def query_similar(self, query_vector: Sequence[float], limit: int) -> list[SimilarityResult]:
        return await asyncio.to_thread(self._query_similar, list(query_vector), limit)

    def _query_similar(self, query_vector: list[float], limit: int) -> list[SimilarityResult]:
        try:
            with self._transaction() as conn:
                rows = conn.execute("SELECT id, content, embedding FROM embeddings ORDER BY seq").fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Knowledge store query failed: {exc}") from exc
        if not rows:
            return []
        records = [
            EmbeddingRecord(id=row[0], content=row[1], embedding=json.loads(row[2]))
            for row in rows
        ]
        matrix = as_matrix([record.embedding for record in records], None)
        return rank(records, matrix, query_vector, limit)

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)

    def _count(self) -> int:
        try:
            with self._transaction() as conn:
                row = conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Knowledge store count failed: {exc}") from exc
        return int(row[0])


__all__ = ["SqliteEmbeddingStore"]
