"""Shared configuration loaded from environment / ``.env``."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat endpoint. Leave empty to use "
            "OpenAI cloud, e.g. 'http://localhost:8000/v1' for a local vLLM server."
        ),
    )
    llm_temperature: float = 0.0

    # Embedding
    embedding_provider: Literal["huggingface", "openai"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = Field(default=64, ge=1)

    # Vector store
    vector_backend: Literal["memory", "chroma"] = "memory"
    chroma_persist_dir: str = Field(
        default="",
        description="Directory for a persistent Chroma store; empty keeps Chroma in memory.",
    )
    collection_name: str = "rag-memory"

    # Chunking
    max_tokens_per_line: int = Field(default=64, ge=1)
    max_tokens_per_paragraph: int = Field(default=512, ge=1)
    chunk_overlap: int = Field(default=0, ge=0)
    token_counter: Literal["whitespace", "char_estimate"] = "whitespace"

    # Retrieval
    search_limit: int = Field(default=3, ge=1)
    min_relevance_score: float = Field(default=0.4, ge=-1.0, le=1.0)

    # Ingestion
    ingest_concurrency: int = Field(default=4, ge=1)
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)
    request_timeout_seconds: float = Field(default=20.0, gt=0)
    deterministic_ids: bool = False
    sources: list[str] = Field(default_factory=list, description="Documents ingested at chat start-up")

    # Chat
    system_prompt: str = "You are an AI assistant that helps people find information."
    context_preamble: str = "Here's some additional information:"
    max_chat_sessions: int = Field(default=1000, ge=1, description="Sessions kept by the HTTP app before the idlest is evicted")
    chat_session_ttl_seconds: float = Field(default=3600.0, gt=0, description="Idle time after which an HTTP chat session is dropped")

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()


# ---------------------------------------------------------------------------
# Factories — build components from the active settings.
# Imports are deferred so that importing ``settings`` stays cheap.
# ---------------------------------------------------------------------------


def build_store(cfg: Settings | None = None):  # noqa: ANN201
    """Return the configured vector-store backend."""
    cfg = cfg or settings
    if cfg.vector_backend == "chroma":
        from rag_chat.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore(cfg.chroma_persist_dir)

    from rag_chat.retrieval.memory_store import InMemoryVectorStore

    return InMemoryVectorStore()


def build_embedder(cfg: Settings | None = None):  # noqa: ANN201
    """Return a :class:`LangChainEmbeddingClient` for the configured provider."""
    from rag_chat.clients.embeddings import LangChainEmbeddingClient, get_embedding_function

    cfg = cfg or settings
    return LangChainEmbeddingClient(get_embedding_function(cfg), batch_size=cfg.embedding_batch_size)


def build_chunker(cfg: Settings | None = None):  # noqa: ANN201
    """Return a :class:`ParagraphChunker` with the configured limits."""
    from rag_chat.ingestion.chunker import ParagraphChunker, get_token_counter

    cfg = cfg or settings
    return ParagraphChunker(
        cfg.max_tokens_per_line,
        cfg.max_tokens_per_paragraph,
        cfg.chunk_overlap,
        token_counter=get_token_counter(cfg.token_counter),
    )
