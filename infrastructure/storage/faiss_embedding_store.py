"""FAISS-based knowledge store with optional on-disk persistence."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from pathlib import Path
from typing import Sequence
from uuid import uuid4

import faiss
import numpy as np

from domain.entities import EmbeddedChunk, EmbeddingRecord, SimilarityResult
from domain.errors import StoreUnavailable
from domain.interfaces import KnowledgeStore
from infrastructure.storage.ranking import as_matrix

logger = logging.getLogger(__name__)


class FaissEmbeddingStore(KnowledgeStore):
    """Inner-product FAISS index over L2-normalised vectors (cosine similarity).

    When ``index_dir`` is given the serialised index and the record table are
    written together to one file after every insert, and that file is swapped
    in with a single ``os.replace``. A failed write leaves the previous file
    in place and removes the batch from the in-memory index.
    """

    store_filename = "faiss_store.npz"

    def __init__(self, *, dimension: int, index_dir: str | Path | None = None) -> None:
        self._dimension = dimension
        self._index_dir = Path(index_dir) if index_dir is not None else None
        self._lock = threading.Lock()
        self._records: dict[int, EmbeddingRecord] = {}
        self._next_id = 0
        self._index = self._load_or_create_index()

    def _load_or_create_index(self) -> faiss.IndexIDMap2:
        if self._index_dir is not None:
            store_path = self._index_dir / self.store_filename
            if store_path.exists():
                try:
                    with np.load(store_path, allow_pickle=False) as data:
                        index = faiss.deserialize_index(data["index"])
                        stored = json.loads(str(data["records"]))
                    records = {
                        int(item["seq"]): EmbeddingRecord(
                            id=item["id"], content=item["content"], embedding=item["embedding"]
                        )
                        for item in stored
                    }
                except (OSError, ValueError, KeyError, TypeError, RuntimeError) as exc:
                    raise StoreUnavailable(f"Cannot load FAISS store at {store_path}: {exc}") from exc
                if index.d != self._dimension:
                    raise StoreUnavailable(
                        f"FAISS index at {store_path} has dimension {index.d}, expected {self._dimension}."
                    )
                if index.ntotal != len(records):
                    raise StoreUnavailable(
                        f"FAISS index at {store_path} holds {index.ntotal} vectors for {len(records)} records."
                    )
                self._records = records
                self._next_id = max(records, default=-1) + 1
                logger.info("Loaded %d records from %s", len(records), store_path)
                return index
        return faiss.IndexIDMap2(faiss.IndexFlatIP(self._dimension))

    def _persist(self, records: dict[int, EmbeddingRecord]) -> None:
        if self._index_dir is None:
            return
        self._index_dir.mkdir(parents=True, exist_ok=True)
        store_path = self._index_dir / self.store_filename
        tmp_path = store_path.with_name(store_path.name + ".tmp")
        payload = [
            {"seq": seq, "id": record.id, "content": record.content, "embedding": record.embedding}
            for seq, record in sorted(records.items())
        ]
        try:
            with tmp_path.open("wb") as handle:
                np.savez(handle, index=faiss.serialize_index(self._index), records=np.array(json.dumps(payload)))
            os.replace(tmp_path, store_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> list[EmbeddingRecord]:
        if not chunks:
            return []
        return await asyncio.to_thread(self._insert, list(chunks))

    def _insert(self, chunks: list[EmbeddedChunk]) -> list[EmbeddingRecord]:
        rows = as_matrix([chunk.embedding for chunk in chunks], self._dimension)
        for chunk in chunks:
            if not isinstance(chunk.content, str) or not chunk.content.strip():
                raise StoreUnavailable("Record content must be a non-empty string.")
        vectors = rows.astype("float32")
        faiss.normalize_L2(vectors)

        with self._lock:
            ids = np.arange(self._next_id, self._next_id + len(chunks), dtype="int64")
            new_records = {
                int(seq): EmbeddingRecord(id=uuid4().hex, content=chunk.content, embedding=row.tolist())
                for seq, chunk, row in zip(ids, chunks, rows)
            }
            self._index.add_with_ids(vectors, ids)
            try:
                self._persist({**self._records, **new_records})
            except (OSError, RuntimeError) as exc:
                self._index.remove_ids(ids)
                logger.error("Persisting FAISS index to %s failed: %s", self._index_dir, exc)
                raise StoreUnavailable(f"Knowledge store insert failed: {exc}") from exc
            self._records.update(new_records)
            self._next_id += len(chunks)
        return list(new_records.values())

    async def query_similar(self, query_vector: Sequence[float], limit: int) -> list[SimilarityResult]:
        return await asyncio.to_thread(self._query_similar, list(query_vector), limit)

    def _query_similar(self, query_vector: list[float], limit: int) -> list[SimilarityResult]:
        query = as_matrix([query_vector], self._dimension).astype("float32")
        faiss.normalize_L2(query)
        with self._lock:
            if self._index.ntotal == 0 or limit <= 0:
                return []
            scores, ids = self._index.search(query, min(limit, self._index.ntotal))
            hits = [(float(score), int(seq)) for score, seq in zip(scores[0], ids[0]) if seq >= 0]
            # Equal scores fall back to insertion order.
            hits.sort(key=lambda item: (-item[0], item[1]))
            return [
                SimilarityResult(
                    id=self._records[seq].id,
                    content=self._records[seq].content,
                    similarity=max(-1.0, min(1.0, score)),
                )
                for score, seq in hits
            ]

    async def count(self) -> int:
        return len(self._records)


__all__ = ["FaissEmbeddingStore"]
