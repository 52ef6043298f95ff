"""Cosine ranking helpers shared by the brute-force stores."""
from __future__ import annotations

from typing import Sequence

import numpy as np

from domain.entities import EmbeddingRecord, SimilarityResult
from domain.errors import StoreUnavailable


def as_matrix(vectors: Sequence[Sequence[float]], dimension: int | None) -> np.ndarray:
    """Stack vectors into a float matrix, checking their dimensionality."""
    try:
        matrix = np.asarray([list(vector) for vector in vectors], dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise StoreUnavailable(f"Malformed embedding vector: {exc}") from exc
    if matrix.ndim != 2:
        raise StoreUnavailable("Embedding vectors must all have the same length.")
    if dimension is not None and matrix.shape[1] != dimension:
        raise StoreUnavailable(f"Expected {dimension}-dimensional embeddings, got {matrix.shape[1]}.")
    return matrix


def cosine_similarities(matrix: np.ndarray, query_vector: Sequence[float]) -> np.ndarray:
    """Return ``1 - cosine_distance`` of every row against the query; zero vectors score 0."""
    query = np.asarray(list(query_vector), dtype=np.float64)
    if matrix.shape[1] != query.shape[0]:
        raise StoreUnavailable(
            f"Query vector has {query.shape[0]} dimensions, store holds {matrix.shape[1]}."
        )
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        similarities = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(similarities, -1.0, 1.0)


def rank(
    records: Sequence[EmbeddingRecord],
    matrix: np.ndarray,
    query_vector: Sequence[float],
    limit: int,
) -> list[SimilarityResult]:
    """Rank records by descending similarity; ties keep insertion order."""
    if limit <= 0 or not records:
        return []
    similarities = cosine_similarities(matrix, query_vector)
    order = np.argsort(-similarities, kind="stable")[:limit]
    return [
        SimilarityResult(id=records[i].id, content=records[i].content, similarity=float(similarities[i]))
        for i in order
    ]


__all__ = ["as_matrix", "cosine_similarities", "rank"]
