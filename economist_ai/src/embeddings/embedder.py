from __future__ import annotations

import asyncio
from typing import List, Sequence

from langchain_core.embeddings import Embeddings

from economist_ai.exception import EmbeddingError
from economist_ai.logger import GLOBAL_LOGGER as log


class Embedder:
    """
    Thin async wrapper over a LangChain embeddings model.

    Output is index-aligned with input; a size mismatch from the remote
    model is treated as a failure rather than silently truncated.
    """

    def __init__(self, embeddings: Embeddings, timeout: float | None = 30.0):
        self.embeddings = embeddings
        self.timeout = timeout

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        if not texts:
            return []
        try:
            vectors = await asyncio.wait_for(
                self.embeddings.aembed_documents(texts), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            log.error("Embedding timed out | inputs=%d | timeout=%s", len(texts), self.timeout)
            raise EmbeddingError("Embedding request timed out", details="timeout") from e
        except Exception as e:
            log.error("Embedding failed | inputs=%d | error=%s", len(texts), str(e))
            raise EmbeddingError("Failed to generate embeddings", details=str(e)) from e

        if len(vectors) != len(texts):
            log.error(
                "Embedding count mismatch | inputs=%d | vectors=%d", len(texts), len(vectors)
            )
            raise EmbeddingError(
                "Embedding model returned a mismatched number of vectors",
                details=f"expected={len(texts)} got={len(vectors)}",
            )

        log.info("Embedded texts | count=%d | dim=%d", len(vectors), len(vectors[0]))
        return [list(v) for v in vectors]

    async def embed_one(self, text: str) -> List[float]:
        try:
            vector = await asyncio.wait_for(
                self.embeddings.aembed_query(text), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            log.error("Query embedding timed out | timeout=%s", self.timeout)
            raise EmbeddingError("Embedding request timed out", details="timeout") from e
        except Exception as e:
            log.error("Query embedding failed | error=%s", str(e))
            raise EmbeddingError("Failed to embed query", details=str(e)) from e
        return list(vector)
