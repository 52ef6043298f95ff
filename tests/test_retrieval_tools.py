import unittest

from application.services.embedding_gateway import EmbeddingGateway
from application.tools.retrieval_tools import RESOURCE_CREATED, RetrievalTools
from application.tools.schemas import AddResourceArgs, GetInformationArgs, UnderstandQueryArgs
from domain.entities import EmbeddedChunk
from domain.errors import QueryUnderstandingFailure, StoreUnavailable
from infrastructure.splitting.period_splitter import PeriodSplitter
from infrastructure.storage.in_memory_embedding_store import InMemoryEmbeddingStore
from tests.fakes import StaticQueryExpander, TableEmbedder

QUESTION_VECTORS = {
    "who is sage": [1.0, 0.0, 0.0],
    "sage background": [1.0, 0.2, 0.0],
    "sage contact information": [0.0, 1.0, 0.0],
    "the original question": [0.0, 0.0, 1.0],
}


class TestRetrievalTools(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.embedder = TableEmbedder(QUESTION_VECTORS)
        self.store = InMemoryEmbeddingStore(dimension=3)
        self.expander = StaticQueryExpander(["Who is Sage", "Sage background"])
        self.tools = RetrievalTools(
            splitter=PeriodSplitter(),
            gateway=EmbeddingGateway(self.embedder),
            store=self.store,
            query_expander=self.expander,
        )
        await self.store.insert(
            [
                EmbeddedChunk("Sage is a realtor", [1.0, 0.0, 0.0]),
                EmbeddedChunk("Sage studied at MIT", [1.0, 0.1, 0.0]),
                EmbeddedChunk("Call Sage on weekdays", [0.0, 1.0, 0.0]),
                EmbeddedChunk("Sage has a dog", [0.2, 0.0, 1.0]),
            ]
        )

    async def test_add_resource_confirms_and_stores(self) -> None:
        result = await self.tools.add_resource(AddResourceArgs(content="I am buying in Medford. I have two kids."))

        self.assertEqual(result, RESOURCE_CREATED)
        self.assertEqual(await self.store.count(), 6)

    async def test_get_information_merges_top_three_across_questions(self) -> None:
        results = await self.tools.get_information(
            GetInformationArgs(
                question="the original question",
                similarQuestions=["who is sage", "sage background", "sage contact information"],
            )
        )

        self.assertEqual(len(results), 3)
        similarities = [r.similarity for r in results]
        self.assertEqual(similarities, sorted(similarities, reverse=True))
        self.assertEqual(results[0].similarity, 1.0)
        self.assertEqual([r.content for r in results[:2]], ["Sage is a realtor", "Call Sage on weekdays"])

    async def test_get_information_keeps_best_three_of_two_full_result_sets(self) -> None:
        store = InMemoryEmbeddingStore(dimension=3)
        records = await store.insert(
            [
                EmbeddedChunk("Sage sells houses", [1.0, 0.0, 0.0]),
                EmbeddedChunk("Sage lives in Somerville", [0.0, 1.0, 0.0]),
                EmbeddedChunk("Sage likes jazz", [0.0, 0.0, 1.0]),
                EmbeddedChunk("Sage answers on weekends", [1.0, 1.0, 1.0]),
            ]
        )
        tools = RetrievalTools(
            splitter=PeriodSplitter(),
            gateway=EmbeddingGateway(TableEmbedder({"first": [1.0, 0.5, 0.25], "second": [0.2, 1.0, 0.4]})),
            store=store,
            query_expander=self.expander,
        )

        results = await tools.get_information(GetInformationArgs(question="q", similarQuestions=["first", "second"]))

        houses, somerville, _, weekends = records
        self.assertEqual([r.id for r in results], [somerville.id, weekends.id, houses.id])
        expected = [1 / 1.2 ** 0.5, 1.75 / (1.3125 ** 0.5 * 3 ** 0.5), 1 / 1.3125 ** 0.5]
        for result, similarity in zip(results, expected):
            self.assertAlmostEqual(result.similarity, similarity, places=5)

    async def test_get_information_keeps_duplicate_hits(self) -> None:
        results = await self.tools.get_information(
            GetInformationArgs(question="q", similarQuestions=["who is sage", "who is sage"])
        )

        self.assertEqual(
            [r.content for r in results], ["Sage is a realtor", "Sage is a realtor", "Sage studied at MIT"]
        )

    async def test_get_information_ignores_question_field(self) -> None:
        await self.tools.get_information(
            GetInformationArgs(question="the original question", similarQuestions=["who is sage"])
        )

        embedded = [text for call in self.embedder.calls for text in call]
        self.assertEqual(embedded, ["who is sage"])

    async def test_get_information_without_similar_questions_is_empty(self) -> None:
        results = await self.tools.get_information(GetInformationArgs(question="who is sage", similarQuestions=[]))

        self.assertEqual(results, [])
        self.assertEqual(self.embedder.calls, [])

    async def test_get_information_fails_when_any_lookup_fails(self) -> None:
        class BrokenStore(InMemoryEmbeddingStore):
            async def query_similar(self, query_vector, limit):
                raise StoreUnavailable("database is down")

        tools = RetrievalTools(
            splitter=PeriodSplitter(),
            gateway=EmbeddingGateway(self.embedder),
            store=BrokenStore(dimension=3),
            query_expander=self.expander,
        )
        with self.assertRaises(StoreUnavailable):
            await tools.get_information(GetInformationArgs(question="q", similarQuestions=["who is sage", "sage background"]))

    async def test_understand_query_returns_expansions(self) -> None:
        questions = await self.tools.understand_query(
            UnderstandQueryArgs(query="tell me about sage", toolsToCallInOrder=["getInformation"])
        )

        self.assertEqual(questions, ["Who is Sage", "Sage background"])
        self.assertEqual(self.expander.queries, ["tell me about sage"])

    async def test_understand_query_degrades_to_raw_query(self) -> None:
        tools = RetrievalTools(
            splitter=PeriodSplitter(),
            gateway=EmbeddingGateway(self.embedder),
            store=self.store,
            query_expander=StaticQueryExpander(error=QueryUnderstandingFailure("schema violated")),
        )

        questions = await tools.understand_query(UnderstandQueryArgs(query="tell me about sage", toolsToCallInOrder=[]))

        self.assertEqual(questions, ["tell me about sage"])


if __name__ == "__main__":
    unittest.main()
