"""Composition root — wires store, clients, pipeline and turn manager together.

Both the CLI and the HTTP app build one :class:`Services` at start-up and
share it for the lifetime of the process.  Tests pass fakes for any of the
collaborators.
"""

from __future__ import annotations

import logging

from rag_chat.chat.session import ChatSession
from rag_chat.chat.tools import CapabilityRegistry, build_registry
from rag_chat.chat.turn import TurnContextManager
from rag_chat.clients.base import ChatClient, DocumentFetcher, EmbeddingClient
from rag_chat.config import Settings, build_chunker, build_embedder, build_store, settings
from rag_chat.ingestion.chunker import ParagraphChunker
from rag_chat.ingestion.pipeline import IngestionPipeline
from rag_chat.retrieval.base import VectorStoreBase
from rag_chat.retrieval.retriever import KnowledgeRetriever

logger = logging.getLogger(__name__)


class Services:
    """Every long-lived component of a running application."""

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingClient,
        fetcher: DocumentFetcher,
        chat: ChatClient,
        *,
        chunker: ParagraphChunker | None = None,
        cfg: Settings | None = None,
    ) -> None:
        self.cfg = cfg or settings
        self.store = store
        self.embedder = embedder
        self.fetcher = fetcher
        self.chat = chat
        self.collection = self.cfg.collection_name

        self.pipeline = IngestionPipeline(
            store,
            embedder,
            fetcher,
            chunker=chunker or build_chunker(self.cfg),
            concurrency_limit=self.cfg.ingest_concurrency,
            fetch_timeout=self.cfg.fetch_timeout_seconds,
            deterministic_ids=self.cfg.deterministic_ids,
        )
        self.retriever = KnowledgeRetriever(
            store,
            embedder,
            collection=self.collection,
            default_limit=self.cfg.search_limit,
            min_score=self.cfg.min_relevance_score,
        )
        self.turns = TurnContextManager(self.retriever, chat, context_preamble=self.cfg.context_preamble)
        self.capabilities: CapabilityRegistry = build_registry(self.retriever)

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> Services:
        """Build production components (LangChain clients, configured store)."""
        from rag_chat.clients.chat import LangChainChatClient, get_llm
        from rag_chat.clients.fetcher import HttpDocumentFetcher

        cfg = cfg or settings
        logger.info(
            "Building services: backend=%s, embeddings=%s:%s, model=%s",
            cfg.vector_backend,
            cfg.embedding_provider,
            cfg.embedding_model,
            cfg.llm_model_name,
        )
        return cls(
            build_store(cfg),
            build_embedder(cfg),
            HttpDocumentFetcher(timeout=cfg.request_timeout_seconds),
            LangChainChatClient(get_llm(cfg=cfg)),
            cfg=cfg,
        )

    def new_session(self) -> ChatSession:
        return ChatSession(
            self.turns,
            collection=self.collection,
            limit=self.cfg.search_limit,
            min_score=self.cfg.min_relevance_score,
            system_prompt=self.cfg.system_prompt,
        )
