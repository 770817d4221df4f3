from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from api.dependencies import get_caller, get_container
from api.schemas import DocumentOut, dump, envelope
from economist_ai.exception import ForbiddenError, NotFoundError, ValidationError
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.src.document_ingestion.data_ingestion import IngestionRequest, UploadedFile
from orchestrator.chat_orchestrator import Caller
from orchestrator.service_container import ServiceContainer

router = APIRouter(prefix="/api/vault")


async def _require_vault(container: ServiceContainer, vault_id: str, caller: Caller) -> None:
    if not vault_id or not vault_id.strip():
        raise ValidationError("Vault ID is required")
    if not await container.vaults.exists(vault_id, caller.user_id):
        raise NotFoundError("Vault not found", details=vault_id)


@router.post("/{vault_id}/documents")
async def upload_document(
    vault_id: str,
    file: Optional[UploadFile] = File(default=None),
    url: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    documentType: Optional[str] = Form(default=None),
    fileName: Optional[str] = Form(default=None),
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    """
    Ingest one document into the vault:
      - exactly one of file / url / content
      - extract -> summarize -> store document -> chunk -> embed -> upsert -> chunk rows
    """
    # 1. Vault must exist and belong to the caller
    await _require_vault(container, vault_id, caller)

    # 2. Read the upload into memory; the pipeline writes its own temp file
    upload = None
    if file is not None and file.filename:
        upload = UploadedFile(filename=file.filename, data=await file.read())

    log.info(
        "Upload request | vault_id=%s | file=%s | url=%s | content=%s",
        vault_id,
        upload.filename if upload else None,
        url,
        bool(content),
    )

    # 3. Run the ingestion pipeline; partial writes are rolled back inside
    result = await container.ingestion.ingest(
        IngestionRequest(
            vault_id=vault_id,
            user_id=caller.user_id,
            document_type=documentType,
            file=upload,
            url=(url or "").strip() or None,
            text=content or None,
            file_name=fileName,
        )
    )
    return JSONResponse(status_code=201, content=envelope(result))


@router.get("/{vault_id}/documents")
async def list_documents(
    vault_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_vault(container, vault_id, caller)
    docs = await container.documents.list_documents(vault_id)
    return envelope([dump(DocumentOut, d) for d in docs])


@router.get("/{vault_id}/documents/{document_id}")
async def get_document(
    vault_id: str,
    document_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_vault(container, vault_id, caller)
    doc = await container.documents.get_document(document_id)
    if doc is None:
        raise NotFoundError("Document not found", details=document_id)
    if doc.vault_id != vault_id:
        raise ForbiddenError("Document does not belong to this vault")
    return envelope(dump(DocumentOut, doc))


@router.delete("/{vault_id}/documents/{document_id}")
async def delete_document(
    vault_id: str,
    document_id: str,
    caller: Caller = Depends(get_caller),
    container: ServiceContainer = Depends(get_container),
):
    await _require_vault(container, vault_id, caller)
    result = await container.ingestion.delete_document(vault_id, document_id)
    return envelope(result)
