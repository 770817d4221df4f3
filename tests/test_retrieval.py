import pytest

from economist_ai.exception import EmbeddingError
from economist_ai.src.document_chat.retrieval import CONTEXT_HEADER, CONTEXT_SEPARATOR, VaultRetriever
from economist_ai.src.embeddings.embedder import Embedder


async def _put(store, embeddings, vault_id, text, document_id, file_name, user_id="user-1", chunk_index=0):
    await store.upsert_many(
        vault_id,
        [
            (
                embeddings.embed_query(text),
                {
                    "vault_id": vault_id,
                    "user_id": user_id,
                    "document_id": document_id,
                    "file_name": file_name,
                    "document_type": "txt",
                    "chunk_index": chunk_index,
                    "text": text,
                },
            )
        ],
    )


@pytest.fixture
def retriever(fake_embeddings, vector_store):
    return VaultRetriever(Embedder(fake_embeddings), vector_store)


async def test_context_contains_matching_chunks(retriever, fake_embeddings, vector_store):
    await _put(vector_store, fake_embeddings, "v1", "oil supply shock", "d1", "energy.pdf")
    await _put(vector_store, fake_embeddings, "v1", "unrelated gardening tips", "d2", "garden.txt")

    context = await retriever.build_context("v1", "user-1", "oil supply shock")

    assert context == CONTEXT_HEADER + "[From: energy.pdf]\noil supply shock"


async def test_context_caps_chunks_per_document(retriever, fake_embeddings, vector_store):
    for i in range(3):
        await _put(vector_store, fake_embeddings, "v1", "same passage", "d1", "a.pdf", chunk_index=i)
    await _put(vector_store, fake_embeddings, "v1", "same passage", "d2", "b.pdf")

    context = await retriever.build_context("v1", "user-1", "same passage")

    blocks = context[len(CONTEXT_HEADER):].split(CONTEXT_SEPARATOR)
    assert sum(b.startswith("[From: a.pdf]") for b in blocks) == 2
    assert sum(b.startswith("[From: b.pdf]") for b in blocks) == 1


async def test_context_is_scoped_to_the_caller(retriever, fake_embeddings, vector_store):
    await _put(vector_store, fake_embeddings, "v1", "private memo", "d1", "memo.txt", user_id="someone-else")

    assert await retriever.build_context("v1", "user-1", "private memo") == ""


async def test_empty_vault_gives_empty_context(retriever):
    assert await retriever.build_context("v1", "user-1", "anything") == ""


async def test_search_applies_threshold_and_shape(retriever, fake_embeddings, vector_store):
    await _put(vector_store, fake_embeddings, "v1", "exchange rate pass-through", "d1", "fx.pdf")
    await _put(vector_store, fake_embeddings, "v1", "crop yields", "d2", "farm.pdf")

    results = await retriever.search("v1", "exchange rate pass-through", top_k=5)

    assert len(results) == 1
    hit = results[0]
    assert hit["documentId"] == "d1"
    assert hit["fileName"] == "fx.pdf"
    assert hit["documentType"] == "txt"
    assert hit["chunkIndex"] == 0
    assert hit["text"] == "exchange rate pass-through"
    assert hit["score"] == pytest.approx(1.0)


async def test_search_can_lower_the_threshold(retriever, fake_embeddings, vector_store):
    await _put(vector_store, fake_embeddings, "v1", "a", "d1", "a.txt")
    await _put(vector_store, fake_embeddings, "v1", "b", "d2", "b.txt")

    results = await retriever.search("v1", "a", score_threshold=-1.0)

    assert {r["documentId"] for r in results} == {"d1", "d2"}


async def test_embedding_failure_propagates(vector_store):
    class Broken:
        async def aembed_query(self, text):
            raise RuntimeError("down")

    retriever = VaultRetriever(Embedder(Broken()), vector_store)

    with pytest.raises(EmbeddingError):
        await retriever.build_context("v1", "user-1", "q")
