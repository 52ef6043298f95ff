"""Query expander that keeps the original query."""
from __future__ import annotations

from domain.interfaces import QueryExpander


class SimpleQueryExpander(QueryExpander):
    """Return the original query without modifications."""

    async def expand(self, query: str) -> list[str]:
        return [query]


__all__ = ["SimpleQueryExpander"]
