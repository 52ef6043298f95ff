"""Use case for adding a piece of knowledge to the knowledge base."""
from __future__ import annotations

import logging

from application.services.embedding_gateway import EmbeddingGateway
from domain.entities import EmbeddedChunk, EmbeddingRecord
from domain.interfaces import ChunkSplitter, KnowledgeStore

logger = logging.getLogger(__name__)


async def add_resource(
    content: str,
    *,
    splitter: ChunkSplitter,
    gateway: EmbeddingGateway,
    store: KnowledgeStore,
) -> list[EmbeddingRecord]:
    """Chunk, embed and store ``content`` as a single unit."""

    chunks = splitter.split_chunks(content)
    if not chunks:
        raise ValueError("Resource has no content to store.")

    embeddings = await gateway.embed_many([chunk.content for chunk in chunks])
    records = await store.insert(
        [EmbeddedChunk(content=chunk.content, embedding=embedding) for chunk, embedding in zip(chunks, embeddings)]
    )
    logger.info("Added resource as %d records", len(records))
    return records


__all__ = ["add_resource"]
