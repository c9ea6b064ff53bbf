"""Embedding client backed by a LangChain ``Embeddings`` model."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from rag_chat.config import Settings, settings
from rag_chat.exceptions import EmbeddingServiceError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(cfg: Settings | None = None) -> Embeddings:
    """Return the LangChain embedding model described by *cfg* (default: global settings).

    ``embedding_provider="huggingface"`` loads a local sentence-transformer;
    ``"openai"`` calls the OpenAI embeddings API (``llm_base_url`` is reused
    for OpenAI-compatible servers).
    """
    cfg = cfg or settings
    if cfg.embedding_provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        kwargs: dict = {"model": cfg.embedding_model, "api_key": cfg.openai_api_key or "EMPTY"}
        if cfg.llm_base_url:
            kwargs["base_url"] = cfg.llm_base_url
        return OpenAIEmbeddings(**kwargs)

    from langchain_huggingface import HuggingFaceEmbeddings

    return HuggingFaceEmbeddings(
        model_name=cfg.embedding_model,
        encode_kwargs={"normalize_embeddings": True},
    )


class LangChainEmbeddingClient:
    """Adapts a LangChain ``Embeddings`` model to :class:`EmbeddingClient`.

    Parameters
    ----------
    embeddings:
        The underlying model; defaults to :func:`get_embedding_function`.
    batch_size:
        Number of texts sent per ``aembed_documents`` call.
    """

    def __init__(self, embeddings: Embeddings | None = None, *, batch_size: int | None = None) -> None:
        self._embeddings = embeddings if embeddings is not None else get_embedding_function()
        self.batch_size = batch_size or settings.embedding_batch_size

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        texts = list(texts)
        if not texts:
            return []

        vectors: list[list[float]] = []
        t0 = time.monotonic()
        try:
            for start in range(0, len(texts), self.batch_size):
                batch = texts[start : start + self.batch_size]
                vectors.extend(await self._embeddings.aembed_documents(batch))
        except Exception as exc:
            raise EmbeddingServiceError(f"Embedding request failed: {exc}") from exc

        if len(vectors) != len(texts):
            raise EmbeddingServiceError(
                f"Embedding service returned {len(vectors)} vectors for {len(texts)} texts"
            )
        logger.debug("Embedded %d text(s) in %.2fs", len(texts), time.monotonic() - t0)
        return [list(v) for v in vectors]
