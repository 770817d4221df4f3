from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from economist_ai.exception import (
    EconomistException,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.src.document_ingestion.chunking import TextChunker
from economist_ai.src.document_ingestion.metadata import DocumentMetadataGenerator
from economist_ai.src.embeddings.embedder import Embedder
from economist_ai.utils.document_ops import TextExtractor
from economist_ai.utils.file_io import SUPPORTED_TYPES, remove_file, save_uploaded_bytes


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class UploadedFile:
    """Raw upload as handed over by the HTTP layer."""

    filename: str
    data: bytes


@dataclass
class IngestionRequest:
    vault_id: str
    user_id: str
    document_type: Optional[str] = None
    file: Optional[UploadedFile] = None
    url: Optional[str] = None
    text: Optional[str] = None
    file_name: Optional[str] = None


class IngestionPipeline:
    """
    Extract -> metadata -> document row -> chunk -> embed -> upsert -> chunk rows.

    Steps run strictly in order. A failure after the document row exists
    removes what was written (vectors first, then the document row) before
    the error is re-raised, so a failed ingestion leaves nothing behind.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        metadata_generator: DocumentMetadataGenerator,
        chunker: TextChunker,
        embedder: Embedder,
        vector_store,
        documents,
        upload_dir: str | Path = "uploads",
    ):
        self.extractor = extractor
        self.metadata_generator = metadata_generator
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.documents = documents
        self.upload_dir = Path(upload_dir)

    # ---------------------------------------------------------------
    # input handling
    # ---------------------------------------------------------------
    @staticmethod
    def _validate(req: IngestionRequest) -> str:
        if not req.vault_id:
            raise ValidationError("Vault ID is required")
        if not req.user_id:
            raise ValidationError("User ID is required")

        provided = [x for x in (req.file, req.url, req.text) if x]
        if not provided:
            raise ValidationError("Either a file, a URL or text content is required")
        if len(provided) > 1:
            raise ValidationError("Provide exactly one of file, URL or text content")

        if req.url:
            parsed = urlparse(req.url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise ValidationError("Invalid URL", details=req.url)
            return "url"

        document_type = (req.document_type or "").lower()
        if req.file and not document_type:
            document_type = Path(req.file.filename or "").suffix.lstrip(".").lower()
        if req.text and not document_type:
            document_type = "txt"
        if document_type not in SUPPORTED_TYPES:
            raise ValidationError(
                "Unsupported document type",
                details=f"{document_type or 'missing'} not in {sorted(SUPPORTED_TYPES)}",
            )
        return document_type

    async def _extract(self, req: IngestionRequest, document_type: str, temp: List[Path]) -> str:
        if req.url:
            return await self.extractor.extract_text_from_url(req.url)
        if req.text:
            return self.extractor.extract_from_text(req.text)
        path = save_uploaded_bytes(
            req.file.data, req.file.filename, document_type, self.upload_dir / req.vault_id
        )
        temp.append(path)
        return await self.extractor.extract_text(path, document_type)

    @staticmethod
    def _file_name(req: IngestionRequest, metadata: Dict[str, str]) -> str:
        if req.url:
            return f"URL: {urlparse(req.url).hostname}"
        if req.file and req.file.filename:
            return req.file.filename
        return req.file_name or metadata["documentName"]

    # ---------------------------------------------------------------
    # pipeline
    # ---------------------------------------------------------------
    async def ingest(self, req: IngestionRequest) -> Dict[str, Any]:
        document_type = self._validate(req)
        temp: List[Path] = []
        document_id: Optional[str] = None
        vector_ids: List[str] = []

        log.info(
            "Ingestion started | vault_id=%s | type=%s | source=%s",
            req.vault_id,
            document_type,
            "url" if req.url else "file" if req.file else "text",
        )
        try:
            text = await self._extract(req, document_type, temp)

            metadata = await self.metadata_generator.summarize(text, document_type)
            file_name = self._file_name(req, metadata)
            if req.url:
                metadata["documentName"] = file_name

            # first durable write; nothing exists in the vector store yet
            document_id = str(uuid.uuid4())
            await self.documents.create_document(
                document_id=document_id,
                vault_id=req.vault_id,
                document_name=metadata["documentName"],
                document_type=document_type,
                document_size=str(len(text)),
                document_metadata=json.dumps(metadata),
            )
            created_at = _iso_now()

            chunks = self.chunker.split(text)
            embeddings = await self.embedder.embed_many(chunks)

            records = [
                (
                    vector,
                    {
                        "vault_id": req.vault_id,
                        "document_id": document_id,
                        "file_name": file_name,
                        "document_type": document_type,
                        "chunk_index": i,
                        "text": chunk,
                        "document_summary": metadata["documentSummary"],
                        "created_at": created_at,
                        "user_id": req.user_id,
                    },
                )
                for i, (chunk, vector) in enumerate(zip(chunks, embeddings))
            ]
            vector_ids = await self.vector_store.upsert_many(req.vault_id, records)

            await self.documents.create_chunks(document_id, req.user_id, vector_ids)

        except EconomistException as e:
            log.error(
                "Ingestion failed | vault_id=%s | document_id=%s | error=%s",
                req.vault_id,
                document_id,
                str(e),
            )
            await self._compensate(req.vault_id, document_id, vector_ids)
            raise
        except Exception as e:
            log.exception("Unexpected ingestion failure | vault_id=%s", req.vault_id)
            await self._compensate(req.vault_id, document_id, vector_ids)
            raise EconomistException("Failed to ingest document", details=str(e)) from e
        finally:
            for path in temp:
                remove_file(path)

        log.info(
            "Ingestion completed | vault_id=%s | document_id=%s | chunks=%d",
            req.vault_id,
            document_id,
            len(vector_ids),
        )
        return {
            "documentId": document_id,
            "documentName": metadata["documentName"],
            "chunkCount": len(vector_ids),
            "documentSummary": metadata["documentSummary"],
        }

    async def _compensate(
        self, vault_id: str, document_id: Optional[str], vector_ids: List[str]
    ) -> None:
        """Undo partial writes: vectors before the document row."""
        if vector_ids:
            try:
                await self.vector_store.delete_by_ids(vault_id, vector_ids)
                log.warning(
                    "Rolled back upserted vectors | vault_id=%s | count=%d",
                    vault_id,
                    len(vector_ids),
                )
            except EconomistException as e:
                log.error(
                    "Vector rollback failed, orphaned vectors remain | vault_id=%s | ids=%s | error=%s",
                    vault_id,
                    vector_ids,
                    str(e),
                )
        if document_id:
            try:
                await self.documents.delete_document(document_id)
                log.warning("Rolled back document record | document_id=%s", document_id)
            except EconomistException as e:
                log.error(
                    "Document rollback failed | document_id=%s | error=%s", document_id, str(e)
                )

    async def delete_document(self, vault_id: str, document_id: str) -> Dict[str, Any]:
        """
        Remove a document: vectors first, then chunk rows, then the document row.
        """
        doc = await self.documents.get_document(document_id)
        if doc is None:
            raise NotFoundError("Document not found", details=document_id)
        if doc.vault_id != vault_id:
            log.warning(
                "Document vault mismatch | document_id=%s | path_vault=%s | owner_vault=%s",
                document_id,
                vault_id,
                doc.vault_id,
            )
            raise ForbiddenError("Document does not belong to this vault")

        chunks = await self.documents.list_chunks(document_id)
        chunk_ids = [c.id for c in chunks]

        await self.vector_store.delete_by_ids(vault_id, chunk_ids)
        await self.documents.delete_chunks(document_id)
        await self.documents.delete_document(document_id)

        log.info(
            "Document deleted | vault_id=%s | document_id=%s | chunks=%d",
            vault_id,
            document_id,
            len(chunk_ids),
        )
        return {
            "message": "Document deleted successfully",
            "documentId": document_id,
            "deletedChunks": len(chunk_ids),
        }
