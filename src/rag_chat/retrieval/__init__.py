"""
Retrieval — vector storage, cosine-similarity search and query retrieval.

This module wraps the vector store behind a clean interface so that
ingestion and chat never need to know which backend holds the vectors.

Public surface
--------------
- :class:`VectorStoreBase` — abstract backend (subclass for other databases).
- :class:`InMemoryVectorStore` — default volatile numpy backend.
- :class:`ChromaVectorStore` — optional durable Chroma backend.
- :class:`KnowledgeRetriever` — embeds a query and searches a collection.
- :class:`VectorRecord`, :class:`SearchHit` — data models.
- :func:`cosine_similarity` — the similarity used for ranking.
"""

from rag_chat.retrieval.base import VectorStoreBase, cosine_similarity
from rag_chat.retrieval.memory_store import InMemoryVectorStore
from rag_chat.retrieval.models import SearchHit, VectorRecord
from rag_chat.retrieval.retriever import KnowledgeRetriever, format_context, rank_by_similarity

__all__ = [
    "ChromaVectorStore",
    "InMemoryVectorStore",
    "KnowledgeRetriever",
    "SearchHit",
    "VectorRecord",
    "VectorStoreBase",
    "cosine_similarity",
    "format_context",
    "rank_by_similarity",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from rag_chat.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
