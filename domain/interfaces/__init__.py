"""Abstract interfaces for the ContextChat system."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Sequence

from domain.entities import (
    Chunk,
    ConversationTurn,
    EmbeddedChunk,
    EmbeddingRecord,
    ModelEvent,
    SimilarityResult,
    ToolDefinition,
)


class ChunkSplitter(ABC):
    """Splits free-text submissions into retrievable segments."""

    @abstractmethod
    def split(self, text: str) -> list[str]:
        """Return the segments of the provided text, in order."""

    def split_chunks(self, text: str) -> list[Chunk]:
        """Return the non-blank segments wrapped as chunks of ``text``."""
        return [Chunk(content=segment, source_text=text) for segment in self.split(text) if segment.strip()]


class Embedder(ABC):
    """Turns text into vector embeddings through some model provider."""

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Return the stable identifier for this embedding model."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the embedding dimension for this model."""

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts into dense vectors, one per input, in input order."""


class KnowledgeStore(ABC):
    """Persists embedded facts and provides cosine similarity search."""

    @abstractmethod
    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> list[EmbeddingRecord]:
        """Store all chunks as one unit or none of them."""

    @abstractmethod
    async def query_similar(self, query_vector: Sequence[float], limit: int) -> list[SimilarityResult]:
        """Return up to ``limit`` records ordered by descending similarity."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored records."""


class QueryExpander(ABC):
    """Produces paraphrases/keyword variants of a user query."""

    @abstractmethod
    async def expand(self, query: str) -> list[str]:
        """Return at most three alternative phrasings of the query."""


class ChatModel(ABC):
    """Streaming chat-completion capability with tool calling."""

    @abstractmethod
    def stream(
        self,
        *,
        system: str,
        messages: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
        tool_choice: str = "auto",
    ) -> AsyncIterator[ModelEvent]:
        """Yield text deltas, then requested tool calls, then a step finish."""


__all__ = [
    "ChunkSplitter",
    "Embedder",
    "KnowledgeStore",
    "QueryExpander",
    "ChatModel",
]
