import asyncio

import pytest
from langchain_core.embeddings import Embeddings

from economist_ai.exception import EmbeddingError
from economist_ai.src.embeddings.embedder import Embedder


class ShortEmbeddings(Embeddings):
    def embed_documents(self, texts):
        return [[0.1, 0.2]] * (len(texts) - 1)

    def embed_query(self, text):
        return [0.1, 0.2]


class BrokenEmbeddings(Embeddings):
    def embed_documents(self, texts):
        raise RuntimeError("quota exceeded")

    def embed_query(self, text):
        raise RuntimeError("quota exceeded")


class SlowEmbeddings(Embeddings):
    def embed_documents(self, texts):
        return [[0.0]] * len(texts)

    def embed_query(self, text):
        return [0.0]

    async def aembed_documents(self, texts):
        await asyncio.sleep(1)
        return [[0.0]] * len(texts)


async def test_vectors_are_index_aligned(fake_embeddings):
    embedder = Embedder(fake_embeddings)
    texts = ["inflation", "unemployment", "inflation"]

    vectors = await embedder.embed_many(texts)

    assert len(vectors) == 3
    assert vectors[0] == vectors[2]
    assert vectors[0] != vectors[1]
    assert vectors[1] == await embedder.embed_one("unemployment")


async def test_empty_input_makes_no_call():
    embedder = Embedder(BrokenEmbeddings())
    assert await embedder.embed_many([]) == []


async def test_count_mismatch_is_an_error():
    with pytest.raises(EmbeddingError):
        await Embedder(ShortEmbeddings()).embed_many(["a", "b"])


async def test_remote_failure_is_wrapped():
    embedder = Embedder(BrokenEmbeddings())
    with pytest.raises(EmbeddingError) as exc:
        await embedder.embed_many(["a"])
    assert "quota exceeded" in exc.value.details

    with pytest.raises(EmbeddingError):
        await embedder.embed_one("a")


async def test_timeout_is_an_error():
    with pytest.raises(EmbeddingError) as exc:
        await Embedder(SlowEmbeddings(), timeout=0.05).embed_many(["a"])
    assert exc.value.details == "timeout"
