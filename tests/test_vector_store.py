import asyncio

import pytest
from langchain_community.vectorstores import FAISS

from economist_ai.exception import ValidationError, VectorStoreError
from economist_ai.src.vector_store.faiss_store import FaissVaultStore, build_filter


@pytest.fixture
def store(tmp_path, fake_embeddings):
    return FaissVaultStore(fake_embeddings, base_dir=tmp_path / "vector_index")


def _records(embeddings, texts, **extra):
    return [
        (embeddings.embed_query(t), {"text": t, "chunk_index": i, **extra})
        for i, t in enumerate(texts)
    ]


async def test_query_ranks_the_exact_match_first(store, fake_embeddings):
    texts = ["inflation expectations", "labour market slack", "yield curve inversion"]
    ids = await store.upsert_many("vault-1", _records(fake_embeddings, texts, vault_id="vault-1"))

    hits = await store.query("vault-1", fake_embeddings.embed_query("labour market slack"), top_k=3)

    assert len(ids) == 3 and len(set(ids)) == 3
    assert hits[0][0] == ids[1]
    assert hits[0][1] == pytest.approx(1.0, abs=1e-4)
    assert hits[0][2]["text"] == "labour market slack"
    assert [h[1] for h in hits] == sorted((h[1] for h in hits), reverse=True)


async def test_filter_restricts_results(store, fake_embeddings):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["a"], user_id="u1"))
    await store.upsert_many("vault-1", _records(fake_embeddings, ["a"], user_id="u2"))

    hits = await store.query(
        "vault-1", fake_embeddings.embed_query("a"), top_k=10, filter={"user_id": {"$eq": "u2"}}
    )

    assert [h[2]["user_id"] for h in hits] == ["u2"]


async def test_namespaces_are_isolated(store, fake_embeddings):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["only in one"]))

    assert await store.query("vault-2", fake_embeddings.embed_query("only in one")) == []


async def test_delete_by_ids_is_idempotent(store, fake_embeddings):
    ids = await store.upsert_many("vault-1", _records(fake_embeddings, ["a", "b"]))

    await store.delete_by_ids("vault-1", [ids[0]])
    await store.delete_by_ids("vault-1", [ids[0], "does-not-exist"])

    hits = await store.query("vault-1", fake_embeddings.embed_query("a"), top_k=10)
    assert [h[0] for h in hits] == [ids[1]]


async def test_delete_by_filter(store, fake_embeddings):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["a", "b"], document_id="d1"))
    await store.upsert_many("vault-1", _records(fake_embeddings, ["c"], document_id="d2"))

    await store.delete_by_filter("vault-1", {"document_id": "d1"})

    hits = await store.query("vault-1", fake_embeddings.embed_query("c"), top_k=10)
    assert {h[2]["document_id"] for h in hits} == {"d2"}


async def test_index_persists_across_instances(tmp_path, store, fake_embeddings):
    ids = await store.upsert_many("vault-1", _records(fake_embeddings, ["persisted"]))

    reopened = FaissVaultStore(fake_embeddings, base_dir=tmp_path / "vector_index")
    hits = await reopened.query("vault-1", fake_embeddings.embed_query("persisted"))

    assert hits[0][0] == ids[0]


async def test_drop_namespace_removes_everything(tmp_path, store, fake_embeddings):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["x"]))

    await store.drop_namespace("vault-1")

    assert not (tmp_path / "vector_index" / "vault-1").exists()
    assert await store.query("vault-1", fake_embeddings.embed_query("x")) == []


async def test_invalid_namespace_is_rejected(store):
    with pytest.raises(ValidationError):
        await store.query("../etc", [0.1] * 32)


def test_build_filter_operators():
    match = build_filter({"a": 1, "b": {"$in": [2, 3]}, "c": {"$ne": "x"}})
    assert match({"a": 1, "b": 3, "c": "y"})
    assert not match({"a": 1, "b": 4, "c": "y"})
    assert not match({"a": 1, "b": 2, "c": "x"})
    assert build_filter(None) is None


def _failing_save(self, folder_path, index_name="index"):
    raise OSError("disk full")


async def test_failed_save_leaves_no_live_vectors(tmp_path, store, fake_embeddings, monkeypatch):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["first"], document_id="d1"))

    monkeypatch.setattr(FAISS, "save_local", _failing_save)
    with pytest.raises(VectorStoreError):
        await store.upsert_many("vault-1", _records(fake_embeddings, ["second"], document_id="d2"))
    monkeypatch.undo()

    hits = await store.query("vault-1", fake_embeddings.embed_query("second"), top_k=10)
    assert [h[2]["document_id"] for h in hits] == ["d1"]

    await store.upsert_many("vault-1", _records(fake_embeddings, ["third"], document_id="d3"))
    reopened = FaissVaultStore(fake_embeddings, base_dir=tmp_path / "vector_index")
    hits = await reopened.query("vault-1", fake_embeddings.embed_query("third"), top_k=10)
    assert sorted(h[2]["document_id"] for h in hits) == ["d1", "d3"]


async def test_failed_delete_save_keeps_memory_in_line_with_disk(store, fake_embeddings, monkeypatch):
    ids = await store.upsert_many("vault-1", _records(fake_embeddings, ["a", "b"]))

    monkeypatch.setattr(FAISS, "save_local", _failing_save)
    with pytest.raises(VectorStoreError):
        await store.delete_by_ids("vault-1", [ids[0]])
    monkeypatch.undo()

    hits = await store.query("vault-1", fake_embeddings.embed_query("a"), top_k=10)
    assert sorted(h[0] for h in hits) == sorted(ids)


async def test_drop_namespace_keeps_the_writer_lock(store, fake_embeddings):
    await store.upsert_many("vault-1", _records(fake_embeddings, ["x"]))
    lock = store._lock("vault-1")

    await asyncio.gather(
        store.drop_namespace("vault-1"),
        store.upsert_many("vault-1", _records(fake_embeddings, ["y"])),
    )

    assert store._lock("vault-1") is lock
    hits = await store.query("vault-1", fake_embeddings.embed_query("y"), top_k=10)
    assert [h[2]["text"] for h in hits] == ["y"]
