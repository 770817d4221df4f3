from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from db.chat_repository import ConversationRepository
from db.database import build_engine, build_session_factory, init_db
from db.document_repository import DocumentRepository
from db.vault_repository import ConversationOwnerRepository
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.src.document_chat.retrieval import VaultRetriever
from economist_ai.src.document_ingestion.chunking import TextChunker
from economist_ai.src.document_ingestion.data_ingestion import IngestionPipeline
from economist_ai.src.document_ingestion.metadata import DocumentMetadataGenerator
from economist_ai.src.embeddings.embedder import Embedder
from economist_ai.src.vector_store.faiss_store import FaissVaultStore
from economist_ai.tools import (
    EconomicIndicatorClient,
    EconomicNewsClient,
    build_chart_tool,
    build_economic_indicator_tool,
    build_economic_news_tool,
)
from economist_ai.utils.config_loader import load_config
from economist_ai.utils.document_ops import TextExtractor
from economist_ai.utils.model_loader import ModelLoader
from orchestrator.chat_orchestrator import (
    VAULT,
    WORKSPACE,
    ChatOrchestrator,
    ConversationStores,
)
from redis_cache.redis_client import ShortTermContextCache, build_redis_client


@dataclass
class ServiceContainer:
    """Every long-lived collaborator, built once at start-up and shared by reference."""

    config: dict
    engine: Any
    session_factory: Any
    redis: Any
    http_client: httpx.AsyncClient
    context_cache: ShortTermContextCache
    workspaces: ConversationOwnerRepository
    vaults: ConversationOwnerRepository
    workspace_messages: ConversationRepository
    vault_messages: ConversationRepository
    documents: DocumentRepository
    vector_store: Any
    retriever: VaultRetriever
    ingestion: IngestionPipeline
    orchestrator: ChatOrchestrator

    async def startup(self) -> None:
        await init_db(self.engine)

    async def aclose(self) -> None:
        await self.http_client.aclose()
        await self.redis.aclose()
        await self.engine.dispose()
        log.info("Service container closed")


def build_container(
    config: Optional[dict] = None,
    database_url: Optional[str] = None,
    redis_client=None,
    model_loader=None,
    embeddings=None,
    vector_store=None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> ServiceContainer:
    """
    Composition root. Every argument overrides the production collaborator,
    which is how tests swap in SQLite, fakeredis, fake models and mock HTTP.
    """
    config = config or load_config()
    model_loader = model_loader or ModelLoader(config)

    tools_cfg = config.get("tools", {})
    timeout = tools_cfg.get("http_timeout", 10)
    http_client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    engine = build_engine(database_url)
    session_factory = build_session_factory(engine)

    redis_client = redis_client or build_redis_client()
    cache_cfg = config.get("context_cache", {})
    context_cache = ShortTermContextCache(
        redis_client,
        ttl_seconds=cache_cfg.get("ttl_seconds", 1800),
        max_messages=cache_cfg.get("max_messages", 50),
        key_prefix=cache_cfg.get("key_prefix", "ws"),
        max_push_retries=cache_cfg.get("max_push_retries", 5),
    )

    workspaces = ConversationOwnerRepository.for_workspaces(session_factory)
    vaults = ConversationOwnerRepository.for_vaults(session_factory)
    workspace_messages = ConversationRepository.for_workspaces(session_factory)
    vault_messages = ConversationRepository.for_vaults(session_factory)
    documents = DocumentRepository(session_factory)

    embeddings = embeddings or model_loader.load_embeddings()
    embedder = Embedder(embeddings, timeout=config.get("embedding_model", {}).get("timeout", 30))

    vs_cfg = config.get("vector_store", {})
    vector_store = vector_store or FaissVaultStore(
        embeddings,
        base_dir=vs_cfg.get("base_dir", "vector_index"),
        cache_size=vs_cfg.get("cache_size", 64),
        cache_ttl=vs_cfg.get("cache_ttl", 3600),
    )

    ret_cfg = config.get("retrieval", {})
    retriever = VaultRetriever(
        embedder,
        vector_store,
        top_k=ret_cfg.get("top_k", 10),
        score_threshold=ret_cfg.get("score_threshold", 0.75),
        max_chunks_per_document=ret_cfg.get("max_chunks_per_document", 2),
    )

    chunk_cfg = config.get("chunking", {})
    meta_cfg = config.get("metadata", {})
    summary_timeout = config.get("llm", {}).get("summary", {}).get("timeout", 30)
    ingestion = IngestionPipeline(
        extractor=TextExtractor(http_client=http_client, timeout=timeout),
        metadata_generator=DocumentMetadataGenerator(
            model_loader.load_llm("summary"),
            text_prefix_chars=meta_cfg.get("text_prefix_chars", 2000),
            name_max_chars=meta_cfg.get("name_max_chars", 50),
            timeout=summary_timeout,
        ),
        chunker=TextChunker(chunk_cfg.get("chunk_size", 1000), chunk_cfg.get("chunk_overlap", 200)),
        embedder=embedder,
        vector_store=vector_store,
        documents=documents,
        upload_dir=config.get("uploads", {}).get("base_dir", "uploads"),
    )

    tools = [
        build_chart_tool(),
        build_economic_indicator_tool(EconomicIndicatorClient(http_client=http_client, timeout=timeout)),
        build_economic_news_tool(
            EconomicNewsClient(
                http_client=http_client,
                timeout=timeout,
                page_size=tools_cfg.get("news_page_size", 20),
            )
        ),
    ]

    chat_cfg = config.get("chat", {})
    orchestrator = ChatOrchestrator(
        model_loader=model_loader,
        context_cache=context_cache,
        stores={
            WORKSPACE: ConversationStores(owners=workspaces, messages=workspace_messages),
            VAULT: ConversationStores(owners=vaults, messages=vault_messages),
        },
        tools=tools,
        retriever=retriever,
        documents=documents,
        default_temperature=chat_cfg.get("temperature", 0.7),
        max_tokens=chat_cfg.get("max_tokens", 2000),
        max_steps=chat_cfg.get("max_steps", 5),
    )

    log.info("Service container built | database=%s", engine.url.render_as_string(hide_password=True))
    return ServiceContainer(
        config=config,
        engine=engine,
        session_factory=session_factory,
        redis=redis_client,
        http_client=http_client,
        context_cache=context_cache,
        workspaces=workspaces,
        vaults=vaults,
        workspace_messages=workspace_messages,
        vault_messages=vault_messages,
        documents=documents,
        vector_store=vector_store,
        retriever=retriever,
        ingestion=ingestion,
        orchestrator=orchestrator,
    )
