"""Embedder backed by the OpenAI embeddings API."""
from __future__ import annotations

import logging
from typing import Sequence

from openai import AsyncOpenAI

from domain.interfaces import Embedder

logger = logging.getLogger(__name__)


class OpenAIEmbedder(Embedder):
    """Calls ``embeddings.create`` on an injected ``AsyncOpenAI`` client."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
    ) -> None:
        self._client = client
        self._model = model
        self._dimension = dimension

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        response = await self._client.embeddings.create(
            model=self._model,
            input=list(texts),
            dimensions=self._dimension,
        )
        # The API reports each vector's input position; do not trust list order.
        data = sorted(response.data, key=lambda item: item.index)
        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug("Embedded %d texts with %s (%s tokens)", len(texts), self._model, usage.total_tokens)
        return [list(item.embedding) for item in data]


__all__ = ["OpenAIEmbedder"]
