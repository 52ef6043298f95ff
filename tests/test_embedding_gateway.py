import unittest

from application.services.embedding_gateway import EmbeddingGateway, normalize_text
from domain.errors import EmbeddingFailure
from tests.fakes import TableEmbedder


class TestEmbeddingGateway(unittest.IsolatedAsyncioTestCase):
    async def test_embed_many_preserves_input_order(self) -> None:
        embedder = TableEmbedder({"a": [1.0, 0.0, 0.0], "b": [0.0, 1.0, 0.0], "c": [0.0, 0.0, 1.0]})
        gateway = EmbeddingGateway(embedder)

        vectors = await gateway.embed_many(["c", "a", "b"])

        self.assertEqual(vectors, [[0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])

    async def test_newlines_become_spaces(self) -> None:
        embedder = TableEmbedder({})
        gateway = EmbeddingGateway(embedder)

        await gateway.embed_one("line one\nline two\r\nthree\rfour")

        self.assertEqual(embedder.calls, [["line one line two three four"]])
        self.assertEqual(normalize_text("a\n\nb"), "a  b")

    async def test_empty_batch_skips_provider(self) -> None:
        embedder = TableEmbedder({})
        self.assertEqual(await EmbeddingGateway(embedder).embed_many([]), [])
        self.assertEqual(embedder.calls, [])

    async def test_blank_text_is_rejected(self) -> None:
        gateway = EmbeddingGateway(TableEmbedder({}))
        with self.assertRaises(ValueError):
            await gateway.embed_one("   ")

    async def test_wrong_dimension_is_an_embedding_failure(self) -> None:
        gateway = EmbeddingGateway(TableEmbedder({"x": [1.0, 2.0]}, dimension=3))
        with self.assertRaises(EmbeddingFailure):
            await gateway.embed_one("x")

    async def test_provider_errors_are_wrapped(self) -> None:
        embedder = TableEmbedder({})
        embedder.error = ConnectionError("boom")
        with self.assertRaises(EmbeddingFailure) as ctx:
            await EmbeddingGateway(embedder).embed_one("hello")
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    async def test_vector_count_mismatch_is_an_embedding_failure(self) -> None:
        class ShortEmbedder(TableEmbedder):
            async def embed_texts(self, texts):
                return [[0.0, 0.0, 1.0]]

        with self.assertRaises(EmbeddingFailure):
            await EmbeddingGateway(ShortEmbedder({})).embed_many(["a", "b"])


if __name__ == "__main__":
    unittest.main()
