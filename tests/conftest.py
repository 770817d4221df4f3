import copy
import json
import math
import re
import uuid
from typing import Any, List

import fakeredis
import httpx
import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from pydantic import Field

from db.chat_repository import ConversationRepository
from db.database import build_engine, build_session_factory, init_db
from db.document_repository import DocumentRepository
from db.vault_repository import ConversationOwnerRepository
from economist_ai.src.document_ingestion.metadata import DocumentMetadataGenerator
from economist_ai.utils.config_loader import load_config
from redis_cache.redis_client import ShortTermContextCache


# ---------------------------------------------------------------
# models
# ---------------------------------------------------------------
class ScriptedChatModel(BaseChatModel):
    """
    Chat model that replays scripted turns.

    A str turn is streamed word by word; a {"tool_calls": [...]} turn emits
    one tool-call chunk per call.
    """

    responses: List[Any] = Field(default_factory=list)
    calls: List[Any] = Field(default_factory=list)
    bound_tools: List[Any] = Field(default_factory=list)
    default: str = "ok"
    fail: bool = False

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = list(tools)
        return self

    def _next(self):
        if self.fail:
            raise RuntimeError("model unavailable")
        return self.responses.pop(0) if self.responses else self.default

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls.append(list(messages))
        turn = self._next()
        text = turn if isinstance(turn, str) else ""
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=text))])

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls.append(list(messages))
        turn = self._next()
        if isinstance(turn, dict):
            for i, call in enumerate(turn["tool_calls"]):
                yield ChatGenerationChunk(
                    message=AIMessageChunk(
                        content="",
                        tool_call_chunks=[
                            {
                                "name": call["name"],
                                "args": json.dumps(call["args"]),
                                "id": call.get("id", f"call_{i}"),
                                "index": i,
                            }
                        ],
                    )
                )
            return
        for piece in re.findall(r"\S+\s*", turn):
            yield ChatGenerationChunk(message=AIMessageChunk(content=piece))


class FakeModelLoader:
    def __init__(self, chat_model=None, summary_model=None, embeddings=None):
        self.chat_model = chat_model or ScriptedChatModel()
        self.summary_model = summary_model or ScriptedChatModel(default="A concise summary of the text.")
        self.embeddings = embeddings or DeterministicFakeEmbedding(size=32)
        self.llm_calls = []

    def load_llm(self, role, temperature=None, max_tokens=None):
        self.llm_calls.append({"role": role, "temperature": temperature, "max_tokens": max_tokens})
        return self.chat_model if role == "chat" else self.summary_model

    def load_embeddings(self):
        return self.embeddings

    @property
    def chat_calls(self):
        return [c for c in self.llm_calls if c["role"] == "chat"]


# ---------------------------------------------------------------
# in-memory vector store
# ---------------------------------------------------------------
def _cosine(a, b) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    return dot / (na * nb) if na and nb else 0.0


def _match(md, flt) -> bool:
    for key, cond in (flt or {}).items():
        want = cond.get("$eq") if isinstance(cond, dict) else cond
        if md.get(key) != want:
            return False
    return True


class InMemoryVectorStore:
    def __init__(self):
        self.namespaces = {}
        self.fail_upsert = False
        self.deleted_ids = []
        self.dropped = []

    def count(self, namespace) -> int:
        return len(self.namespaces.get(namespace, {}))

    async def upsert_many(self, namespace, records):
        from economist_ai.exception import VectorStoreError

        if self.fail_upsert:
            raise VectorStoreError("upsert failed")
        ids = [str(uuid.uuid4()) for _ in records]
        ns = self.namespaces.setdefault(namespace, {})
        for vector_id, (vec, md) in zip(ids, records):
            ns[vector_id] = (list(vec), dict(md))
        return ids

    async def query(self, namespace, embedding, top_k=10, filter=None):
        ns = self.namespaces.get(namespace, {})
        hits = [
            (vid, _cosine(embedding, vec), dict(md))
            for vid, (vec, md) in ns.items()
            if _match(md, filter)
        ]
        hits.sort(key=lambda h: h[1], reverse=True)
        return hits[:top_k]

    async def delete_by_ids(self, namespace, ids):
        ns = self.namespaces.get(namespace, {})
        for vid in ids:
            if ns.pop(vid, None) is not None:
                self.deleted_ids.append(vid)

    async def delete_by_filter(self, namespace, filter):
        ns = self.namespaces.get(namespace, {})
        await self.delete_by_ids(namespace, [vid for vid, (_, md) in ns.items() if _match(md, filter)])

    async def drop_namespace(self, namespace):
        self.dropped.append(namespace)
        self.namespaces.pop(namespace, None)


# ---------------------------------------------------------------
# fixtures
# ---------------------------------------------------------------
@pytest.fixture
def config(tmp_path):
    cfg = copy.deepcopy(load_config())
    cfg["vector_store"]["base_dir"] = str(tmp_path / "vector_index")
    cfg["uploads"]["base_dir"] = str(tmp_path / "uploads")
    return cfg


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'economist.db'}"


@pytest.fixture
async def engine(database_url):
    engine = build_engine(database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def documents(session_factory):
    return DocumentRepository(session_factory)


@pytest.fixture
def workspaces(session_factory):
    return ConversationOwnerRepository.for_workspaces(session_factory)


@pytest.fixture
def vaults(session_factory):
    return ConversationOwnerRepository.for_vaults(session_factory)


@pytest.fixture
def workspace_messages(session_factory):
    return ConversationRepository.for_workspaces(session_factory)


@pytest.fixture
def vault_messages(session_factory):
    return ConversationRepository.for_vaults(session_factory)


@pytest.fixture
async def redis_client():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def context_cache(redis_client):
    return ShortTermContextCache(redis_client, ttl_seconds=1800, max_messages=50)


@pytest.fixture
def fake_embeddings():
    return DeterministicFakeEmbedding(size=32)


@pytest.fixture
def vector_store():
    return InMemoryVectorStore()


@pytest.fixture
def summary_model():
    return ScriptedChatModel(default="A concise summary of the text.")


@pytest.fixture
def metadata_generator(summary_model):
    return DocumentMetadataGenerator(summary_model)


@pytest.fixture
def mock_http():
    """httpx client whose responses come from `routes[(host, path)]`."""
    routes = {}
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        key = (request.url.host, request.url.path)
        responder = routes.get(key)
        if responder is None:
            return httpx.Response(404, json={"message": "not routed"})
        return responder(request) if callable(responder) else responder

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client.routes = routes
    client.seen = seen
    return client
