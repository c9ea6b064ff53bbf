"""Volatile, process-local vector store backed by numpy."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence

import numpy as np

from rag_chat.exceptions import DimensionMismatchError
from rag_chat.retrieval.base import VectorStoreBase
from rag_chat.retrieval.models import SearchHit, VectorRecord

logger = logging.getLogger(__name__)


class _Collection:
    """Records of one collection plus a lazily rebuilt search snapshot."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.dimension: int | None = None
        # dict keeps first-insertion order, which is the search tie-break
        self.records: dict[str, VectorRecord] = {}
        self._snapshot: tuple[tuple[VectorRecord, ...], np.ndarray] | None = None

    def invalidate(self) -> None:
        self._snapshot = None

    def snapshot(self) -> tuple[tuple[VectorRecord, ...], np.ndarray]:
        if self._snapshot is None:
            records = tuple(self.records.values())
            if records:
                matrix = np.array([r.embedding for r in records], dtype=np.float64)
            else:
                matrix = np.empty((0, self.dimension or 0), dtype=np.float64)
            matrix.setflags(write=False)
            self._snapshot = (records, matrix)
        return self._snapshot


class InMemoryVectorStore(VectorStoreBase):
    """Thread-safe in-memory store.

    Writers hold a lock while validating and publishing records; readers take
    an immutable snapshot under the same lock and score it outside, so a
    search sees each record either complete or not at all.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, _Collection] = {}

    # -- VectorStoreBase overrides --------------------------------------------

    def ensure_collection(self, collection: str) -> None:
        with self._lock:
            self._get_or_create(collection)

    def upsert_many(self, collection: str, records: Iterable[VectorRecord]) -> int:
        staged = [
            r if r.collection == collection else r.model_copy(update={"collection": collection})
            for r in records
        ]
        with self._lock:
            coll = self._get_or_create(collection)
            expected = coll.dimension
            for record in staged:
                if expected is None:
                    expected = record.dimension
                elif record.dimension != expected:
                    raise DimensionMismatchError(collection, expected, record.dimension)
            if not staged:
                return 0
            coll.dimension = expected
            for record in staged:
                coll.records[record.id] = record
            coll.invalidate()
        logger.debug("Upserted %d record(s) into %r", len(staged), collection)
        return len(staged)

    def search(
        self,
        collection: str,
        query_vector: Sequence[float],
        *,
        limit: int = 3,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        with self._lock:
            coll = self._collections.get(collection)
            if coll is None or not coll.records:
                return []
            dimension = coll.dimension
            records, matrix = coll.snapshot()

        query = np.asarray(query_vector, dtype=np.float64)
        if query.shape != (dimension,):
            raise DimensionMismatchError(collection, dimension, int(query.size))
        if limit <= 0:
            return []

        denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        scores = np.divide(dots, denom, out=np.zeros_like(dots), where=denom != 0)

        hits: list[SearchHit] = []
        for i in np.argsort(-scores, kind="stable"):
            score = float(scores[i])
            if score < min_score:
                break
            record = records[i]
            hits.append(SearchHit(score=score, text=record.text, id=record.id, metadata=record.metadata))
            if len(hits) >= limit:
                break
        return hits

    def exists(self, collection: str) -> bool:
        with self._lock:
            return collection in self._collections

    def count(self, collection: str) -> int:
        with self._lock:
            coll = self._collections.get(collection)
            return len(coll.records) if coll else 0

    def list_collections(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def delete_collection(self, collection: str) -> None:
        with self._lock:
            self._collections.pop(collection, None)

    # -- internals ------------------------------------------------------------

    def _get_or_create(self, collection: str) -> _Collection:
        coll = self._collections.get(collection)
        if coll is None:
            coll = _Collection(collection)
            self._collections[collection] = coll
            logger.info("Created collection %r", collection)
        return coll
