"""In-memory knowledge store for demos and tests."""
from __future__ import annotations

import logging
from typing import Sequence
from uuid import uuid4

import numpy as np

from domain.entities import EmbeddedChunk, EmbeddingRecord, SimilarityResult
from domain.errors import StoreUnavailable
from domain.interfaces import KnowledgeStore
from infrastructure.storage.ranking import as_matrix, rank

logger = logging.getLogger(__name__)


class InMemoryEmbeddingStore(KnowledgeStore):
    """Keeps records in a Python list and a numpy matrix; searches by brute force."""

    def __init__(self, dimension: int | None = None) -> None:
        self._dimension = dimension
        self._records: list[EmbeddingRecord] = []
        self._matrix: np.ndarray | None = None

    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> list[EmbeddingRecord]:
        if not chunks:
            return []
        # No awaits below: new rows are built in full, then published together.
        rows = as_matrix([chunk.embedding for chunk in chunks], self._dimension)
        for chunk in chunks:
            if not isinstance(chunk.content, str) or not chunk.content.strip():
                raise StoreUnavailable("Record content must be a non-empty string.")
        if self._matrix is not None and rows.shape[1] != self._matrix.shape[1]:
            raise StoreUnavailable(
                f"Expected {self._matrix.shape[1]}-dimensional embeddings, got {rows.shape[1]}."
            )

        records = [
            EmbeddingRecord(id=uuid4().hex, content=chunk.content, embedding=row.tolist())
            for chunk, row in zip(chunks, rows)
        ]
        self._matrix = rows if self._matrix is None else np.vstack([self._matrix, rows])
        self._records.extend(records)
        logger.debug("Stored %d records in memory (total %d)", len(records), len(self._records))
        return records

    async def query_similar(self, query_vector: Sequence[float], limit: int) -> list[SimilarityResult]:
        if self._matrix is None:
            return []
        return rank(self._records, self._matrix, query_vector, limit)

    async def count(self) -> int:
        return len(self._records)


__all__ = ["InMemoryEmbeddingStore"]
