from __future__ import annotations

import asyncio
import re
import shutil
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from cachetools import TTLCache
from langchain_community.vectorstores import FAISS
from langchain_community.vectorstores.utils import DistanceStrategy
from langchain_core.embeddings import Embeddings

from economist_ai.exception import ValidationError, VectorStoreError
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.utils.thread_pool import run_sync

_NAMESPACE_RE = re.compile(r"^[A-Za-z0-9_\-]{1,128}$")

QueryHit = Tuple[str, float, Dict[str, Any]]


def _unit(vector: Sequence[float]) -> List[float]:
    arr = np.asarray(vector, dtype="float32")
    norm = float(np.linalg.norm(arr))
    return (arr / norm).tolist() if norm > 0 else arr.tolist()


def _matches(metadata: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    for key, cond in flt.items():
        value = metadata.get(key)
        if isinstance(cond, dict):
            if "$eq" in cond and value != cond["$eq"]:
                return False
            if "$in" in cond and value not in cond["$in"]:
                return False
            if "$ne" in cond and value == cond["$ne"]:
                return False
        elif value != cond:
            return False
    return True


def build_filter(flt: Optional[Dict[str, Any]]) -> Optional[Callable[[Dict[str, Any]], bool]]:
    """Plain values and {"$eq"|"$in"|"$ne": ...} conditions, all ANDed."""
    if not flt:
        return None
    return lambda md: _matches(md or {}, flt)


class FaissVaultStore:
    """
    Namespaced FAISS indexes on local disk: one directory per vault.

    - vector_index/<namespace>/index.faiss + index.pkl
    - cosine similarity via inner product over L2-normalized vectors
    - vector ids are uuid4 strings generated here, never by the caller
    - writes to one namespace are serialized by an asyncio lock
    """

    def __init__(
        self,
        embeddings: Embeddings,
        base_dir: str | Path = "vector_index",
        cache_size: int = 64,
        cache_ttl: int = 3600,
    ):
        self.embeddings = embeddings
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        # loaded indexes; every write is saved to disk so eviction loses nothing
        self._indexes: TTLCache = TTLCache(maxsize=cache_size, ttl=cache_ttl)
        # pool workers touch the cache for different namespaces at once
        self._cache_lock = threading.Lock()
        self._locks: Dict[str, asyncio.Lock] = {}

    # ---------------------------------------------------------------
    # internals
    # ---------------------------------------------------------------
    def _dir(self, namespace: str) -> Path:
        if not namespace or not _NAMESPACE_RE.match(namespace):
            raise ValidationError("Invalid vector namespace", details=namespace)
        return self.base_dir / namespace

    def _lock(self, namespace: str) -> asyncio.Lock:
        if namespace not in self._locks:
            self._locks[namespace] = asyncio.Lock()
        return self._locks[namespace]

    @staticmethod
    def _exists(index_dir: Path) -> bool:
        return (index_dir / "index.faiss").exists() and (index_dir / "index.pkl").exists()

    def _cached(self, namespace: str) -> Optional[FAISS]:
        with self._cache_lock:
            return self._indexes.get(namespace)

    def _cache(self, namespace: str, vs: FAISS) -> None:
        with self._cache_lock:
            self._indexes[namespace] = vs

    def _evict(self, namespace: str) -> None:
        with self._cache_lock:
            self._indexes.pop(namespace, None)

    def _load(self, namespace: str) -> Optional[FAISS]:
        vs = self._cached(namespace)
        if vs is not None:
            return vs
        index_dir = self._dir(namespace)
        if not self._exists(index_dir):
            return None
        log.info("Loading FAISS index | namespace=%s", namespace)
        vs = FAISS.load_local(
            str(index_dir),
            self.embeddings,
            allow_dangerous_deserialization=True,
            distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
        )
        self._cache(namespace, vs)
        return vs

    def _save(self, namespace: str, vs: FAISS) -> None:
        vs.save_local(str(self._dir(namespace)))
        self._cache(namespace, vs)

    def _upsert_sync(
        self, namespace: str, records: Sequence[Tuple[List[float], Dict[str, Any]]]
    ) -> List[str]:
        ids = [str(uuid.uuid4()) for _ in records]
        text_embeddings = [(str(md.get("text", "")), _unit(vec)) for vec, md in records]
        metadatas = [dict(md) for _, md in records]

        vs = self._load(namespace)
        try:
            if vs is None:
                log.info("Creating FAISS index | namespace=%s", namespace)
                vs = FAISS.from_embeddings(
                    text_embeddings,
                    self.embeddings,
                    metadatas=metadatas,
                    ids=ids,
                    distance_strategy=DistanceStrategy.MAX_INNER_PRODUCT,
                )
            else:
                vs.add_embeddings(text_embeddings, metadatas=metadatas, ids=ids)
            self._save(namespace, vs)
        except Exception:
            # the in-memory index may hold unsaved vectors; reload from disk next time
            self._evict(namespace)
            raise
        return ids

    def _query_sync(
        self,
        namespace: str,
        embedding: List[float],
        top_k: int,
        flt: Optional[Dict[str, Any]],
    ) -> List[QueryHit]:
        vs = self._load(namespace)
        if vs is None or vs.index.ntotal == 0:
            return []
        # filtering happens after the FAISS search, so scan the whole namespace
        results = vs.similarity_search_with_score_by_vector(
            _unit(embedding),
            k=top_k,
            filter=build_filter(flt),
            fetch_k=max(vs.index.ntotal, top_k),
        )
        # docstore hands back the stored Document objects, so identity maps them to ids
        id_by_doc = {
            id(vs.docstore.search(doc_id)): doc_id for doc_id in vs.index_to_docstore_id.values()
        }
        hits = [
            (id_by_doc[id(doc)], float(score), dict(doc.metadata)) for doc, score in results
        ]
        hits.sort(key=lambda h: h[1], reverse=True)
        return hits

    def _delete_sync(self, namespace: str, ids: Sequence[str]) -> int:
        vs = self._load(namespace)
        if vs is None:
            return 0
        existing = set(vs.index_to_docstore_id.values())
        to_delete = [i for i in ids if i in existing]
        if not to_delete:
            return 0
        try:
            vs.delete(to_delete)
            self._save(namespace, vs)
        except Exception:
            self._evict(namespace)
            raise
        return len(to_delete)

    def _ids_by_filter_sync(self, namespace: str, flt: Dict[str, Any]) -> List[str]:
        vs = self._load(namespace)
        if vs is None:
            return []
        match = build_filter(flt)
        return [
            doc_id
            for doc_id in vs.index_to_docstore_id.values()
            if match is None or match(vs.docstore.search(doc_id).metadata)
        ]

    # ---------------------------------------------------------------
    # public API
    # ---------------------------------------------------------------
    async def upsert_many(
        self, namespace: str, records: Sequence[Tuple[List[float], Dict[str, Any]]]
    ) -> List[str]:
        if not records:
            return []
        self._dir(namespace)
        async with self._lock(namespace):
            try:
                ids = await run_sync(self._upsert_sync, namespace, records)
            except Exception as e:
                log.error("Vector upsert failed | namespace=%s | error=%s", namespace, str(e))
                raise VectorStoreError("Failed to upsert vectors", details=str(e)) from e
        log.info("Vectors upserted | namespace=%s | count=%d", namespace, len(ids))
        return ids

    async def query(
        self,
        namespace: str,
        embedding: List[float],
        top_k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[QueryHit]:
        self._dir(namespace)
        async with self._lock(namespace):
            try:
                hits = await run_sync(self._query_sync, namespace, embedding, top_k, filter)
            except Exception as e:
                log.error("Vector query failed | namespace=%s | error=%s", namespace, str(e))
                raise VectorStoreError("Failed to query vectors", details=str(e)) from e
        log.debug("Vector query | namespace=%s | hits=%d", namespace, len(hits))
        return hits

    async def delete_by_ids(self, namespace: str, ids: Sequence[str]) -> None:
        if not ids:
            return
        self._dir(namespace)
        async with self._lock(namespace):
            try:
                deleted = await run_sync(self._delete_sync, namespace, list(ids))
            except Exception as e:
                log.error("Vector delete failed | namespace=%s | error=%s", namespace, str(e))
                raise VectorStoreError("Failed to delete vectors", details=str(e)) from e
        log.info(
            "Vectors deleted | namespace=%s | requested=%d | deleted=%d",
            namespace,
            len(ids),
            deleted,
        )

    async def delete_by_filter(self, namespace: str, filter: Dict[str, Any]) -> None:
        self._dir(namespace)
        async with self._lock(namespace):
            try:
                ids = await run_sync(self._ids_by_filter_sync, namespace, filter)
                deleted = await run_sync(self._delete_sync, namespace, ids)
            except Exception as e:
                log.error("Vector filter delete failed | namespace=%s | error=%s", namespace, str(e))
                raise VectorStoreError("Failed to delete vectors by filter", details=str(e)) from e
        log.info("Vectors deleted by filter | namespace=%s | deleted=%d", namespace, deleted)

    async def drop_namespace(self, namespace: str) -> None:
        index_dir = self._dir(namespace)
        # the namespace lock stays registered; queued writers still hold it
        async with self._lock(namespace):
            self._evict(namespace)
            try:
                if index_dir.exists():
                    await run_sync(shutil.rmtree, index_dir)
            except OSError as e:
                log.error("Failed to drop namespace | namespace=%s | error=%s", namespace, str(e))
                raise VectorStoreError("Failed to drop vector namespace", details=str(e)) from e
        log.info("Vector namespace dropped | namespace=%s", namespace)
