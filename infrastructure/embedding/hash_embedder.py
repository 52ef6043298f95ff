"""Deterministic hash-based embedder for offline runs and tests."""
from __future__ import annotations

import hashlib
import math
from typing import Sequence

from domain.interfaces import Embedder


class HashEmbedder(Embedder):
    """Maps each text to a unit vector derived from its word hashes.

    Texts sharing words get similar vectors, which is enough for demos;
    there is no semantic model behind it.
    """

    def __init__(self, dimension: int = 64) -> None:
        self._dimension = dimension
        self._model_id = f"hash-words-{dimension}"

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dimension(self) -> int:
        return self._dimension

    def _word_vector(self, word: str) -> list[float]:
        digest = hashlib.sha256(word.encode("utf-8")).digest()
        return [digest[i % len(digest)] / 255.0 - 0.5 for i in range(self._dimension)]

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for word in text.lower().split():
            for idx, value in enumerate(self._word_vector(word.strip(".,;:!?\"'()"))):
                vector[idx] += value
        norm = math.sqrt(sum(value * value for value in vector)) or 1.0
        return [value / norm for value in vector]

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vectorize(text) for text in texts]


__all__ = ["HashEmbedder"]
