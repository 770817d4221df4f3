from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Optional

from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.src.embeddings.embedder import Embedder

CONTEXT_HEADER = "\n\nRelevant context from vault documents:\n"
CONTEXT_SEPARATOR = "\n\n---\n\n"


class VaultRetriever:
    """
    Similarity search over one vault namespace.

    - `search`: ranked hits for the vault_search tool
    - `build_context`: grouped, thresholded excerpts appended to the last
      user message in vault chat
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store,
        top_k: int = 10,
        score_threshold: float = 0.75,
        max_chunks_per_document: int = 2,
    ):
        self.embedder = embedder
        self.vector_store = vector_store
        self.top_k = top_k
        self.score_threshold = score_threshold
        self.max_chunks_per_document = max_chunks_per_document

    async def search(
        self,
        vault_id: str,
        query: str,
        top_k: Optional[int] = None,
        score_threshold: Optional[float] = None,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        threshold = self.score_threshold if score_threshold is None else score_threshold
        flt = {"vault_id": vault_id, **(filter or {})}

        vector = await self.embedder.embed_one(query)
        hits = await self.vector_store.query(vault_id, vector, top_k or self.top_k, flt)

        results = [
            {
                "id": vector_id,
                "score": score,
                "documentId": md.get("document_id"),
                "fileName": md.get("file_name"),
                "documentType": md.get("document_type"),
                "chunkIndex": md.get("chunk_index"),
                "text": md.get("text", ""),
            }
            for vector_id, score, md in hits
            if score > threshold
        ]
        log.info(
            "Vault search | vault_id=%s | hits=%d | kept=%d | threshold=%.2f",
            vault_id,
            len(hits),
            len(results),
            threshold,
        )
        return results

    async def build_context(self, vault_id: str, user_id: str, query: str) -> str:
        vector = await self.embedder.embed_one(query)
        hits = await self.vector_store.query(
            vault_id,
            vector,
            self.top_k,
            {"vault_id": {"$eq": vault_id}, "user_id": {"$eq": user_id}},
        )

        # group by document, preserving best-first order of first appearance
        grouped: "OrderedDict[str, List]" = OrderedDict()
        for _, score, md in hits:
            if score <= self.score_threshold:
                continue
            bucket = grouped.setdefault(md.get("document_id", ""), [])
            if len(bucket) < self.max_chunks_per_document:
                bucket.append(md)

        blocks = [
            f"[From: {md.get('file_name', 'Unknown document')}]\n{md.get('text', '')}"
            for bucket in grouped.values()
            for md in bucket
        ]
        log.info(
            "Vault context built | vault_id=%s | hits=%d | documents=%d | blocks=%d",
            vault_id,
            len(hits),
            len(grouped),
            len(blocks),
        )
        if not blocks:
            return ""
        return CONTEXT_HEADER + CONTEXT_SEPARATOR.join(blocks)
