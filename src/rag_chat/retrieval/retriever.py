"""Knowledge retriever — embed a query and search a collection.

This module is the **primary public interface** for query-time retrieval.
It is used by the turn manager, the ``search_knowledge`` capability and the
HTTP ``/search`` route.

Usage::

    retriever = KnowledgeRetriever(store, embedder, collection="rag-memory")
    hits = await retriever.search("What is a reptile?", limit=3, min_score=0.4)
    for hit in hits:
        print(hit.short_ref(), hit.score, hit.text[:80])
"""

from __future__ import annotations

import logging

from rag_chat.clients.base import EmbeddingClient
from rag_chat.exceptions import EmbeddingServiceError
from rag_chat.retrieval.base import VectorStoreBase, cosine_similarity
from rag_chat.retrieval.models import SearchHit

logger = logging.getLogger(__name__)


class KnowledgeRetriever:
    """Query-time retrieval over one default collection.

    Parameters
    ----------
    store:
        A concrete vector-store backend.
    embedder:
        Client used to embed queries; must match the one used at ingestion.
    collection:
        Default collection searched when none is passed explicitly.
    default_limit:
        Default number of hits returned by :meth:`search`.
    min_score:
        Default minimum cosine similarity.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingClient,
        *,
        collection: str,
        default_limit: int = 3,
        min_score: float = 0.0,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.collection = collection
        self.default_limit = default_limit
        self.min_score = min_score

    async def embed_query(self, query: str) -> list[float]:
        vectors = await self.embedder.embed([query])
        if len(vectors) != 1:
            raise EmbeddingServiceError(f"Expected one query vector, got {len(vectors)}")
        return vectors[0]

    async def search(
        self,
        query: str,
        *,
        collection: str | None = None,
        limit: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchHit]:
        """Embed *query* and return the best hits of *collection*.

        Raises
        ------
        EmbeddingServiceError
            When the query cannot be embedded.
        """
        vector = await self.embed_query(query)
        return self.search_by_embedding(vector, collection=collection, limit=limit, min_score=min_score)

    def search_by_embedding(
        self,
        embedding: list[float],
        *,
        collection: str | None = None,
        limit: int | None = None,
        min_score: float | None = None,
    ) -> list[SearchHit]:
        """Same as :meth:`search` but accepts a pre-computed embedding."""
        collection = collection or self.collection
        hits = self.store.search(
            collection,
            embedding,
            limit=self.default_limit if limit is None else limit,
            min_score=self.min_score if min_score is None else min_score,
        )
        logger.info("Search in %r returned %d hit(s)", collection, len(hits))
        return hits

    async def retrieve_text(self, query: str) -> str:
        """Concatenated texts of the hits for *query*, one per line."""
        hits = await self.search(query)
        return format_context(hits)


def format_context(hits: list[SearchHit]) -> str:
    """Join hit texts into the block injected ahead of the user message."""
    return "\n".join(hit.text for hit in hits)


async def rank_by_similarity(
    embedder: EmbeddingClient,
    text: str,
    candidates: list[str],
) -> list[tuple[float, str]]:
    """Score every candidate against *text*, best first.

    Embeds everything in one batch; ties keep candidate order.
    """
    if not candidates:
        return []
    vectors = await embedder.embed([text, *candidates])
    if len(vectors) != len(candidates) + 1:
        raise EmbeddingServiceError(f"Expected {len(candidates) + 1} vectors, got {len(vectors)}")
    query, *others = vectors
    scored = [(cosine_similarity(query, vec), cand) for vec, cand in zip(others, candidates)]
    return sorted(scored, key=lambda pair: pair[0], reverse=True)
