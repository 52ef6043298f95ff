"""Chunk splitter that cuts text on literal periods."""
from __future__ import annotations

from domain.interfaces import ChunkSplitter


class PeriodSplitter(ChunkSplitter):
    """Naive sentence splitter: one segment per ``.``-delimited span.

    Abbreviations and decimals are split too; segments keep their
    surrounding whitespace.
    """

    delimiter = "."

    def split(self, text: str) -> list[str]:
        return [segment for segment in text.strip().split(self.delimiter) if segment != ""]


def chunk(text: str) -> list[str]:
    """Split ``text`` with the default period splitter."""
    return PeriodSplitter().split(text)


__all__ = ["PeriodSplitter", "chunk"]
