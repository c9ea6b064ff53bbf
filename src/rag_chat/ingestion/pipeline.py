"""Concurrent ingestion — fetch → chunk → embed → upsert, per source.

Every source is processed as an independent asyncio task; at most
``concurrency_limit`` of them are in flight at once.  A source that cannot be
fetched, yields no text, or whose chunks cannot be embedded is recorded as
failed and logged, while the others carry on.  A
:class:`~rag_chat.exceptions.DimensionMismatchError` is a configuration error
and aborts the whole run.

Usage::

    pipeline = IngestionPipeline(store, embedder, fetcher)
    report = asyncio.run(pipeline.ingest("rag-memory", ["https://example.com/a"]))
    print(report.summary())
"""

from __future__ import annotations

import asyncio
import hashlib
import itertools
import logging
import threading
import time
from collections.abc import Sequence
from uuid import uuid4

from pydantic import BaseModel, Field

from rag_chat.clients.base import DocumentFetcher, EmbeddingClient
from rag_chat.config import settings
from rag_chat.exceptions import (
    EmbeddingServiceError,
    IngestionError,
    NetworkError,
    ParseError,
    RagChatError,
)
from rag_chat.ingestion.chunker import Chunk, ParagraphChunker
from rag_chat.retrieval.base import VectorStoreBase
from rag_chat.retrieval.models import VectorRecord

logger = logging.getLogger(__name__)


class IngestionReport(BaseModel):
    """Outcome of one :meth:`IngestionPipeline.ingest` call.

    Attributes
    ----------
    collection:
        Target collection.
    succeeded / failed:
        Sources in input order, split by outcome.
    chunks_indexed:
        Records written across all succeeded sources.
    errors:
        ``source → reason`` for every failed source.
    skipped:
        ``True`` when ingestion was skipped because the collection was
        already populated.
    """

    collection: str
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    chunks_indexed: int = 0
    errors: dict[str, str] = Field(default_factory=dict)
    skipped: bool = False
    elapsed_seconds: float = 0.0

    def summary(self) -> str:
        if self.skipped:
            return f"Found '{self.collection}' in the vector store; ingestion skipped."
        return (
            f"Ingested {len(self.succeeded)} source(s), {len(self.failed)} failed; "
            f"{self.chunks_indexed} chunks → collection '{self.collection}' "
            f"in {self.elapsed_seconds:.1f}s"
        )


def deterministic_record_id(collection: str, source: str, ordinal: int) -> str:
    """Stable id for chunk *ordinal* of *source*, so re-ingestion overwrites."""
    return hashlib.sha256(f"{collection}|{source}|{ordinal}".encode()).hexdigest()[:16]


class IngestionPipeline:
    """Populates a vector store from a list of document sources.

    Parameters
    ----------
    store:
        Destination vector store.
    embedder:
        Client used to embed chunks (batch per source).
    fetcher:
        Returns the readable text of a source, ``""`` on failure.
    chunker:
        Chunking parameters; defaults to the configured limits.
    concurrency_limit:
        Maximum number of sources processed at once.
    fetch_timeout:
        Wall-clock budget in seconds for fetching one source.
    deterministic_ids:
        Derive record ids from ``(collection, source, ordinal)`` instead of
        a per-run counter, making re-ingestion idempotent.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: EmbeddingClient,
        fetcher: DocumentFetcher,
        *,
        chunker: ParagraphChunker | None = None,
        concurrency_limit: int | None = None,
        fetch_timeout: float | None = None,
        deterministic_ids: bool | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.fetcher = fetcher
        self.chunker = chunker or ParagraphChunker(
            settings.max_tokens_per_line,
            settings.max_tokens_per_paragraph,
            settings.chunk_overlap,
        )
        self.concurrency_limit = concurrency_limit or settings.ingest_concurrency
        self.fetch_timeout = fetch_timeout or settings.fetch_timeout_seconds
        self.deterministic_ids = settings.deterministic_ids if deterministic_ids is None else deterministic_ids
        self._counter = itertools.count()
        self._counter_lock = threading.Lock()

    # -- public API -----------------------------------------------------------

    async def ingest(
        self,
        collection: str,
        sources: Sequence[str],
        concurrency_limit: int | None = None,
    ) -> IngestionReport:
        """Ingest every source into *collection*; see module docstring."""
        sources = list(sources)
        limit = concurrency_limit or self.concurrency_limit
        if limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {limit}")

        self.store.ensure_collection(collection)
        semaphore = asyncio.Semaphore(limit)
        run_id = uuid4().hex[:12]
        log_prefix = f"[{run_id}]"
        logger.info("%s Ingesting %d source(s) into %r (concurrency=%d)", log_prefix, len(sources), collection, limit)

        t0 = time.monotonic()
        tasks = [
            asyncio.create_task(self._guarded(collection, uri, semaphore, run_id))
            for uri in sources
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            # reap the siblings so none is left with an unretrieved exception
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        report = IngestionReport(collection=collection, elapsed_seconds=round(time.monotonic() - t0, 2))
        for uri, outcome in zip(sources, outcomes):
            if isinstance(outcome, RagChatError):
                report.failed.append(uri)
                report.errors[uri] = str(outcome)
            else:
                report.succeeded.append(uri)
                report.chunks_indexed += outcome

        logger.info("%s %s", log_prefix, report.summary())
        return report

    async def ensure_populated(
        self,
        collection: str,
        sources: Sequence[str],
        concurrency_limit: int | None = None,
    ) -> IngestionReport:
        """Ingest *sources* unless *collection* already holds records."""
        if self.store.exists(collection) and self.store.count(collection) > 0:
            logger.info(
                "Found %r in vector store (%d records); skipping ingestion",
                collection,
                self.store.count(collection),
            )
            return IngestionReport(collection=collection, skipped=True)
        return await self.ingest(collection, sources, concurrency_limit)

    # -- internals ------------------------------------------------------------

    async def _guarded(
        self,
        collection: str,
        uri: str,
        semaphore: asyncio.Semaphore,
        run_id: str,
    ) -> int | RagChatError:
        """Run one source, turning absorbable failures into a return value."""
        async with semaphore:
            try:
                return await self._ingest_source(collection, uri, run_id)
            except (IngestionError, EmbeddingServiceError) as exc:
                logger.error("✗ %s: %s", uri, exc)
                return exc

    async def _ingest_source(self, collection: str, uri: str, run_id: str) -> int:
        text = await self._fetch(uri)
        if not text.strip():
            raise ParseError(f"No readable text extracted from {uri}", source=uri)

        chunks = self.chunker.chunk(text, source=uri)
        if not chunks:
            raise ParseError(f"No chunks produced from {uri}", source=uri)

        vectors = await self.embedder.embed([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingServiceError(
                f"Embedding service returned {len(vectors)} vectors for {len(chunks)} chunks of {uri}"
            )
        dims = {len(v) for v in vectors}
        if len(dims) != 1:
            raise EmbeddingServiceError(f"Embedding service returned mixed dimensions {sorted(dims)} for {uri}")

        records = [self._to_record(collection, chunk, vector, run_id) for chunk, vector in zip(chunks, vectors)]
        written = self.store.upsert_many(collection, records)
        logger.info("✓ %s (%d chunks)", uri, written)
        return written

    async def _fetch(self, uri: str) -> str:
        try:
            text = await asyncio.wait_for(self.fetcher.fetch_text(uri), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise NetworkError(f"Fetching {uri} timed out after {self.fetch_timeout:.1f}s", source=uri) from exc
        except Exception as exc:
            raise NetworkError(f"Fetching {uri} failed: {exc}", source=uri) from exc
        return text or ""

    def _to_record(self, collection: str, chunk: Chunk, vector: list[float], run_id: str) -> VectorRecord:
        return VectorRecord(
            id=self._record_id(collection, chunk, run_id),
            text=chunk.text,
            embedding=tuple(float(x) for x in vector),
            collection=collection,
            metadata={"source": chunk.source, "chunk_index": chunk.index},
        )

    def _record_id(self, collection: str, chunk: Chunk, run_id: str) -> str:
        if self.deterministic_ids:
            return deterministic_record_id(collection, chunk.source, chunk.index)
        with self._counter_lock:
            n = next(self._counter)
        return f"{run_id}:paragraph[{n}]"
