from __future__ import annotations

import json
from typing import List, Optional

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from economist_ai.exception import EconomistException, ErrorType
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.tools.tool_response import (
    create_error_response,
    create_success_response,
    handle_tool_validation_error,
)


class VaultSearchInput(BaseModel):
    query: str = Field(min_length=1, description="The search query to find relevant passages")
    top_k: int = Field(default=5, ge=1, le=50, description="Number of results to return")
    score_threshold: float = Field(
        default=0.75, ge=-1, le=1, description="Minimum cosine similarity of a returned passage"
    )
    document_type: Optional[str] = Field(
        default=None, description="Filter by document type (pdf, docx, xlsx, txt, csv, url)"
    )


class VaultDocumentsInput(BaseModel):
    document_id: Optional[str] = Field(
        default=None, description="Specific document ID to get details for; omit to list all"
    )


def serialize_document(doc) -> dict:
    try:
        metadata = json.loads(doc.document_metadata or "{}")
    except ValueError:
        metadata = {}
    return {
        "id": doc.id,
        "vaultId": doc.vault_id,
        "documentName": doc.document_name,
        "documentType": doc.document_type,
        "documentSize": doc.document_size,
        "documentMetadata": metadata,
        "createdAt": doc.created_at.isoformat() if doc.created_at else None,
    }


def build_vault_tools(vault_id: str, retriever, documents) -> List[StructuredTool]:
    """Tools scoped to one vault; the model cannot reach another vault through them."""

    async def vault_search(
        query: str,
        top_k: int = 5,
        score_threshold: float = 0.75,
        document_type: Optional[str] = None,
    ) -> dict:
        try:
            flt = {"document_type": document_type} if document_type else None
            results = await retriever.search(
                vault_id, query, top_k=top_k, score_threshold=score_threshold, filter=flt
            )
        except EconomistException as e:
            log.warning("Vault search tool failed | vault_id=%s | error=%s", vault_id, str(e))
            return create_error_response(
                "Vault search failed",
                e.error_type,
                str(e.details or e.message),
                "Please try again or check if the vault exists and is accessible.",
            )
        return create_success_response(
            {
                "query": query,
                "results": results,
                "searchParams": {
                    "topK": top_k,
                    "scoreThreshold": score_threshold,
                    "documentType": document_type or "all types",
                },
            }
        )

    async def vault_documents(document_id: Optional[str] = None) -> dict:
        try:
            if document_id:
                doc = await documents.get_document(document_id)
                if doc is None or doc.vault_id != vault_id:
                    return create_error_response(
                        f"Document {document_id} not found in this vault",
                        ErrorType.NOT_FOUND,
                        "The document does not exist or belongs to a different vault.",
                        "List the vault documents to find a valid document ID.",
                    )
                return create_success_response(serialize_document(doc))
            docs = await documents.list_documents(vault_id)
        except EconomistException as e:
            log.warning("Vault documents tool failed | vault_id=%s | error=%s", vault_id, str(e))
            return create_error_response(
                "Failed to get vault documents",
                e.error_type,
                str(e.details or e.message),
                "Please try again or check if the vault exists and is accessible.",
            )
        return create_success_response(
            {"documents": [serialize_document(d) for d in docs], "total": len(docs)}
        )

    return [
        StructuredTool.from_function(
            coroutine=vault_search,
            name="vault_search_tool",
            description="Semantic search over the documents uploaded to this vault.",
            args_schema=VaultSearchInput,
            handle_validation_error=handle_tool_validation_error,
        ),
        StructuredTool.from_function(
            coroutine=vault_documents,
            name="vault_documents_tool",
            description="List the documents in this vault, or get one document's metadata and summary.",
            args_schema=VaultDocumentsInput,
            handle_validation_error=handle_tool_validation_error,
        ),
    ]
