"""Use case that retrieves knowledge relevant to a single query."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from application.services.embedding_gateway import EmbeddingGateway
from domain.entities import SimilarityResult
from domain.interfaces import KnowledgeStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetrievalSettings:
    """Retrieval policy knobs.

    ``fallback_count`` candidates are returned unfiltered when none clears
    ``similarity_threshold``; ``merged_limit`` caps the merged result of a
    multi-query lookup.
    """

    candidate_limit: int = 4
    similarity_threshold: float = 0.1
    fallback_count: int = 2
    merged_limit: int = 3


async def find_relevant_content(
    query: str,
    *,
    gateway: EmbeddingGateway,
    store: KnowledgeStore,
    settings: RetrievalSettings | None = None,
) -> list[SimilarityResult]:
    """Return stored facts similar to ``query``, falling back to the best few."""

    cfg = settings or RetrievalSettings()
    query_vector = await gateway.embed_one(query)
    candidates = await store.query_similar(query_vector, cfg.candidate_limit)

    relevant = [result for result in candidates if result.similarity > cfg.similarity_threshold]
    if relevant:
        return relevant

    if candidates:
        logger.info(
            "No result above %.2f for %r; falling back to top %d",
            cfg.similarity_threshold,
            query,
            cfg.fallback_count,
        )
    return candidates[: cfg.fallback_count]


__all__ = ["RetrievalSettings", "find_relevant_content"]
