import json

import httpx
import pytest

from economist_ai.exception import (
    ForbiddenError,
    MetadataError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    VectorStoreError,
)
from economist_ai.src.document_ingestion.chunking import TextChunker
from economist_ai.src.document_ingestion.data_ingestion import (
    IngestionPipeline,
    IngestionRequest,
    UploadedFile,
)
from economist_ai.src.document_ingestion.metadata import DocumentMetadataGenerator
from economist_ai.src.embeddings.embedder import Embedder
from economist_ai.utils.document_ops import TextExtractor
from tests.conftest import ScriptedChatModel

SCENARIO_TEXT = "abcd " * 499 + "abcde"


@pytest.fixture
async def vault(vaults):
    return await vaults.create("user-1", "Macro research")


@pytest.fixture
def pipeline(tmp_path, mock_http, metadata_generator, fake_embeddings, vector_store, documents):
    return IngestionPipeline(
        extractor=TextExtractor(http_client=mock_http),
        metadata_generator=metadata_generator,
        chunker=TextChunker(1000, 200),
        embedder=Embedder(fake_embeddings),
        vector_store=vector_store,
        documents=documents,
        upload_dir=tmp_path / "uploads",
    )


async def test_text_ingestion_end_to_end(pipeline, vault, documents, vector_store):
    result = await pipeline.ingest(
        IngestionRequest(vault_id=vault.id, user_id="user-1", text=SCENARIO_TEXT)
    )

    assert result["chunkCount"] == 3
    assert result["documentSummary"] == "A concise summary of the text."
    assert result["documentName"] == SCENARIO_TEXT[:50] + "..."

    doc = await documents.get_document(result["documentId"])
    assert doc.vault_id == vault.id
    assert doc.document_size == "2500"
    assert doc.document_type == "txt"
    assert json.loads(doc.document_metadata)["documentSummary"] == result["documentSummary"]

    chunks = await documents.list_chunks(doc.id)
    assert [c.chunk_index for c in chunks] == [0, 1, 2]
    assert {c.user_id for c in chunks} == {"user-1"}
    stored = vector_store.namespaces[vault.id]
    assert {c.id for c in chunks} == set(stored)

    metas = sorted((md for _, md in stored.values()), key=lambda md: md["chunk_index"])
    assert [md["chunk_index"] for md in metas] == [0, 1, 2]
    for md in metas:
        assert md["vault_id"] == vault.id
        assert md["document_id"] == doc.id
        assert md["user_id"] == "user-1"
        assert md["document_type"] == "txt"
        assert md["document_summary"] == result["documentSummary"]
        assert md["created_at"].endswith("Z")


async def test_uploaded_file_keeps_its_name_and_temp_file_is_removed(tmp_path, pipeline, vault, vector_store):
    result = await pipeline.ingest(
        IngestionRequest(
            vault_id=vault.id,
            user_id="user-1",
            file=UploadedFile(filename="Outlook 2024.txt", data=b"Growth slows.\nInflation eases."),
        )
    )

    assert result["chunkCount"] == 1
    _, md = next(iter(vector_store.namespaces[vault.id].values()))
    assert md["file_name"] == "Outlook 2024.txt"
    assert md["document_type"] == "txt"
    assert list((tmp_path / "uploads" / vault.id).iterdir()) == []


async def test_url_ingestion_names_document_after_host(pipeline, vault, mock_http, documents):
    mock_http.routes[("www.example.org", "/report")] = httpx.Response(
        200, headers={"content-type": "text/html"}, text="<p>Trade deficit narrows.</p>"
    )

    result = await pipeline.ingest(
        IngestionRequest(vault_id=vault.id, user_id="user-1", url="https://www.example.org/report")
    )

    assert result["documentName"] == "URL: www.example.org"
    doc = await documents.get_document(result["documentId"])
    assert doc.document_name == "URL: www.example.org"


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"text": "a", "url": "https://example.com"},
        {"url": "ftp://example.com/file"},
        {"text": "a", "document_type": "exe"},
        {"file": UploadedFile(filename="malware.exe", data=b"MZ")},
    ],
)
async def test_invalid_requests_write_nothing(pipeline, vault, documents, vector_store, kwargs):
    with pytest.raises(ValidationError):
        await pipeline.ingest(IngestionRequest(vault_id=vault.id, user_id="user-1", **kwargs))

    assert await documents.list_documents(vault.id) == []
    assert vector_store.count(vault.id) == 0


async def test_metadata_failure_writes_nothing(pipeline, vault, documents, vector_store):
    pipeline.metadata_generator = DocumentMetadataGenerator(ScriptedChatModel(fail=True))

    with pytest.raises(MetadataError):
        await pipeline.ingest(IngestionRequest(vault_id=vault.id, user_id="user-1", text="text"))

    assert await documents.list_documents(vault.id) == []
    assert vector_store.count(vault.id) == 0


async def test_upsert_failure_removes_document_row(pipeline, vault, documents, vector_store):
    vector_store.fail_upsert = True

    with pytest.raises(VectorStoreError):
        await pipeline.ingest(IngestionRequest(vault_id=vault.id, user_id="user-1", text="text"))

    assert await documents.list_documents(vault.id) == []


async def test_chunk_row_failure_rolls_back_vectors_and_document(
    pipeline, vault, documents, vector_store, monkeypatch
):
    async def broken_create_chunks(*args, **kwargs):
        raise PersistenceError("Failed to create chunk records", details="disk full")

    monkeypatch.setattr(documents, "create_chunks", broken_create_chunks)

    with pytest.raises(PersistenceError):
        await pipeline.ingest(IngestionRequest(vault_id=vault.id, user_id="user-1", text=SCENARIO_TEXT))

    assert len(vector_store.deleted_ids) == 3
    assert vector_store.count(vault.id) == 0
    assert await documents.list_documents(vault.id) == []


async def test_delete_document_removes_vectors_and_rows(pipeline, vault, documents, vector_store):
    result = await pipeline.ingest(
        IngestionRequest(vault_id=vault.id, user_id="user-1", text=SCENARIO_TEXT)
    )

    out = await pipeline.delete_document(vault.id, result["documentId"])

    assert out == {
        "message": "Document deleted successfully",
        "documentId": result["documentId"],
        "deletedChunks": 3,
    }
    assert vector_store.count(vault.id) == 0
    assert await documents.get_document(result["documentId"]) is None
    assert await documents.list_chunks(result["documentId"]) == []


async def test_delete_document_from_another_vault_is_forbidden(
    pipeline, vault, vaults, documents, vector_store
):
    other = await vaults.create("user-1", "Other vault")
    result = await pipeline.ingest(IngestionRequest(vault_id=vault.id, user_id="user-1", text="text"))

    with pytest.raises(ForbiddenError):
        await pipeline.delete_document(other.id, result["documentId"])

    assert await documents.get_document(result["documentId"]) is not None
    assert len(await documents.list_chunks(result["documentId"])) == 1
    assert vector_store.count(vault.id) == 1


async def test_delete_missing_document(pipeline, vault):
    with pytest.raises(NotFoundError):
        await pipeline.delete_document(vault.id, "missing")
