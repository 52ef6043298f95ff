"""The three knowledge-base tools: addResource, getInformation, understandQuery."""
from __future__ import annotations

import asyncio
import logging
from itertools import chain

from application.services.embedding_gateway import EmbeddingGateway
from application.tools.registry import ToolRegistry, ToolSpec
from application.tools.schemas import (
    ADD_RESOURCE_DESCRIPTION,
    GET_INFORMATION_DESCRIPTION,
    UNDERSTAND_QUERY_DESCRIPTION,
    AddResourceArgs,
    GetInformationArgs,
    ToolName,
    UnderstandQueryArgs,
)
from application.use_cases.add_resource import add_resource
from application.use_cases.find_relevant_content import RetrievalSettings, find_relevant_content
from domain.entities import SimilarityResult
from domain.errors import QueryUnderstandingFailure
from domain.interfaces import ChunkSplitter, KnowledgeStore, QueryExpander

logger = logging.getLogger(__name__)

RESOURCE_CREATED = "Resource successfully created and embedded."


class RetrievalTools:
    """Tool handlers bound to one knowledge base."""

    def __init__(
        self,
        *,
        splitter: ChunkSplitter,
        gateway: EmbeddingGateway,
        store: KnowledgeStore,
        query_expander: QueryExpander,
        settings: RetrievalSettings | None = None,
    ) -> None:
        self._splitter = splitter
        self._gateway = gateway
        self._store = store
        self._query_expander = query_expander
        self._settings = settings or RetrievalSettings()

    async def add_resource(self, args: AddResourceArgs) -> str:
        records = await add_resource(
            args.content,
            splitter=self._splitter,
            gateway=self._gateway,
            store=self._store,
        )
        logger.info("addResource stored %d chunks", len(records))
        return RESOURCE_CREATED

    async def get_information(self, args: GetInformationArgs) -> list[SimilarityResult]:
        # Only the paraphrases are queried; ``args.question`` is context for the model.
        if not args.similar_questions:
            logger.info("getInformation called without similar questions")
            return []

        tasks = [
            asyncio.ensure_future(
                find_relevant_content(
                    question,
                    gateway=self._gateway,
                    store=self._store,
                    settings=self._settings,
                )
            )
            for question in args.similar_questions
        ]
        try:
            result_sets = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        merged = sorted(chain.from_iterable(result_sets), key=lambda result: result.similarity, reverse=True)
        top = merged[: self._settings.merged_limit]
        logger.info(
            "getInformation merged %d results from %d queries, returning %d",
            len(merged),
            len(result_sets),
            len(top),
        )
        return top

    async def understand_query(self, args: UnderstandQueryArgs) -> list[str]:
        logger.debug("understandQuery plan: %s", args.tools_to_call_in_order)
        try:
            questions = await self._query_expander.expand(args.query)
        except QueryUnderstandingFailure as exc:
            logger.warning("Query understanding failed, using the raw query: %s", exc)
            return [args.query]
        return questions or [args.query]

    def specs(self) -> list[ToolSpec]:
        return [
            ToolSpec(ToolName.ADD_RESOURCE, ADD_RESOURCE_DESCRIPTION, AddResourceArgs, self.add_resource),
            ToolSpec(ToolName.GET_INFORMATION, GET_INFORMATION_DESCRIPTION, GetInformationArgs, self.get_information),
            ToolSpec(ToolName.UNDERSTAND_QUERY, UNDERSTAND_QUERY_DESCRIPTION, UnderstandQueryArgs, self.understand_query),
        ]


def build_tool_registry(tools: RetrievalTools) -> ToolRegistry:
    return ToolRegistry(tools.specs())


__all__ = ["RetrievalTools", "build_tool_registry", "RESOURCE_CREATED"]
