"""Chroma implementation of the vector-store abstraction.

Optional durable backend: with a ``persist_dir`` the collections survive the
process, which lets the chat entry point skip re-ingesting a collection that
is already populated.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from typing import Any

import chromadb

from rag_chat.exceptions import DimensionMismatchError
from rag_chat.retrieval.base import VectorStoreBase
from rag_chat.retrieval.models import SearchHit, VectorRecord

logger = logging.getLogger(__name__)

# Metadata key holding the insertion sequence used for the search tie-break.
_SEQ_KEY = "_seq"


def _flatten_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Chroma metadata values must be flat str/int/float/bool."""
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store using cosine distance.

    Parameters
    ----------
    persist_dir:
        Directory of a ``chromadb.PersistentClient``.  When empty an
        in-process ``EphemeralClient`` is used.
    client:
        Pre-built Chroma client; overrides *persist_dir*.
    """

    def __init__(self, persist_dir: str = "", *, client: Any | None = None) -> None:
        if client is None:
            client = chromadb.PersistentClient(path=persist_dir) if persist_dir else chromadb.EphemeralClient()
        self._client = client
        self._lock = threading.Lock()
        self._next_seq: dict[str, int] = {}

    # -- VectorStoreBase overrides --------------------------------------------

    def ensure_collection(self, collection: str) -> None:
        self._collection(collection)

    def upsert_many(self, collection: str, records: Iterable[VectorRecord]) -> int:
        staged = list(records)
        coll = self._collection(collection)
        with self._lock:
            expected = self._dimension(coll)
            for record in staged:
                if expected is None:
                    expected = record.dimension
                elif record.dimension != expected:
                    raise DimensionMismatchError(collection, expected, record.dimension)
            if not staged:
                return 0

            ids = [r.id for r in staged]
            previous = coll.get(ids=ids, include=["metadatas"])
            kept_seq = {
                pid: (meta or {}).get(_SEQ_KEY)
                for pid, meta in zip(previous.get("ids", []), previous.get("metadatas") or [])
            }
            metadatas = []
            for record in staged:
                seq = kept_seq.get(record.id)
                if seq is None:
                    seq = self._take_seq(collection, coll)
                metadatas.append({**_flatten_metadata(record.metadata), _SEQ_KEY: seq})

            coll.upsert(
                ids=ids,
                embeddings=[list(r.embedding) for r in staged],
                documents=[r.text for r in staged],
                metadatas=metadatas,
            )
        logger.debug("Upserted %d record(s) into Chroma collection %r", len(staged), collection)
        return len(staged)

    def search(
        self,
        collection: str,
        query_vector: Sequence[float],
        *,
        limit: int = 3,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        if not self.exists(collection):
            return []
        coll = self._collection(collection)
        total = coll.count()
        if total == 0:
            return []
        dimension = self._dimension(coll)
        if dimension is not None and len(query_vector) != dimension:
            raise DimensionMismatchError(collection, dimension, len(query_vector))
        if limit <= 0:
            return []

        results = coll.query(
            query_embeddings=[list(query_vector)],
            n_results=min(limit, total),
            include=["documents", "metadatas", "distances"],
        )
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        ranked: list[tuple[float, int, SearchHit]] = []
        for doc_id, content, meta, dist in zip(ids, docs, metas, distances):
            # cosine space: distance = 1 - cosine similarity
            score = 1.0 - float(dist)
            if score < min_score:
                continue
            meta = dict(meta or {})
            seq = int(meta.pop(_SEQ_KEY, 0))
            ranked.append((score, seq, SearchHit(score=score, text=content or "", id=doc_id, metadata=meta)))

        ranked.sort(key=lambda item: (-item[0], item[1]))
        return [hit for _, _, hit in ranked]

    def exists(self, collection: str) -> bool:
        return collection in self.list_collections()

    def count(self, collection: str) -> int:
        if not self.exists(collection):
            return 0
        return self._collection(collection).count()

    def list_collections(self) -> list[str]:
        # chromadb < 0.6 returns Collection objects, newer releases return names
        return [getattr(c, "name", c) for c in self._client.list_collections()]

    def delete_collection(self, collection: str) -> None:
        if self.exists(collection):
            self._client.delete_collection(collection)
        with self._lock:
            self._next_seq.pop(collection, None)

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    # -- internals ------------------------------------------------------------

    def _collection(self, collection: str) -> Any:
        return self._client.get_or_create_collection(collection, metadata={"hnsw:space": "cosine"})

    @staticmethod
    def _dimension(coll: Any) -> int | None:
        sample = coll.get(limit=1, include=["embeddings"])
        embeddings = sample.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _take_seq(self, name: str, coll: Any) -> int:
        if name not in self._next_seq:
            existing = coll.get(include=["metadatas"]).get("metadatas") or []
            self._next_seq[name] = max(((m or {}).get(_SEQ_KEY, -1) for m in existing), default=-1) + 1
        seq = self._next_seq[name]
        self._next_seq[name] = seq + 1
        return seq
