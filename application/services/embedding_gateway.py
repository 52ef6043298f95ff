"""Gateway that validates and normalises calls to an embedding provider."""
from __future__ import annotations

import logging
import re
from typing import Sequence

from domain.errors import EmbeddingFailure
from domain.interfaces import Embedder

logger = logging.getLogger(__name__)

_NEWLINES = re.compile(r"\r\n|\r|\n")


def normalize_text(text: str) -> str:
    """Replace every newline with a single space."""
    return _NEWLINES.sub(" ", text)


class EmbeddingGateway:
    """Converts text into fixed-length vectors via an ``Embedder``."""

    def __init__(self, embedder: Embedder, dimension: int | None = None) -> None:
        self._embedder = embedder
        self._dimension = dimension if dimension is not None else embedder.dimension

    @property
    def model_id(self) -> str:
        return self._embedder.model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_one(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        inputs: list[str] = []
        for text in texts:
            if not text or not text.strip():
                raise ValueError("Cannot embed empty text.")
            inputs.append(normalize_text(text))

        try:
            vectors = await self._embedder.embed_texts(inputs)
        except EmbeddingFailure:
            raise
        except Exception as exc:
            logger.error("Embedding call to %s failed: %s", self.model_id, exc)
            raise EmbeddingFailure(f"Embedding provider {self.model_id} failed: {exc}") from exc

        if len(vectors) != len(inputs):
            raise EmbeddingFailure(
                f"Embedding provider returned {len(vectors)} vectors for {len(inputs)} texts."
            )
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingFailure(
                    f"Expected {self._dimension}-dimensional embeddings from {self.model_id}, got {len(vector)}."
                )
        logger.debug("Embedded %d texts with %s", len(inputs), self.model_id)
        return [list(vector) for vector in vectors]


__all__ = ["EmbeddingGateway", "normalize_text"]
