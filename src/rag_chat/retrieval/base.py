"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`VectorStoreBase` and
implementing the abstract methods.  Ingestion and chat are backend-agnostic.

Contract shared by every backend
--------------------------------
* A collection's dimensionality is fixed by its first record; a vector of
  another length raises :class:`~rag_chat.exceptions.DimensionMismatchError`.
* :meth:`search` ranks by cosine similarity, drops hits below ``min_score``,
  returns at most ``limit`` hits sorted by descending score with ties kept in
  insertion order, and returns ``[]`` for an unknown collection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

import numpy as np

from rag_chat.retrieval.models import SearchHit, VectorRecord


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """``dot(a, b) / (|a| * |b|)``; ``0.0`` when either vector has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class VectorStoreBase(ABC):
    """Backend-agnostic store of named vector collections."""

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def ensure_collection(self, collection: str) -> None:
        """Create *collection* if it does not exist yet (idempotent)."""
        ...

    @abstractmethod
    def upsert_many(self, collection: str, records: Iterable[VectorRecord]) -> int:
        """Insert or replace *records*; all-or-nothing.

        Every vector is validated against the collection's dimensionality
        before anything is written.

        Returns
        -------
        int
            Number of records written.
        """
        ...

    @abstractmethod
    def search(
        self,
        collection: str,
        query_vector: Sequence[float],
        *,
        limit: int = 3,
        min_score: float = 0.0,
    ) -> list[SearchHit]:
        """Return the best-matching records of *collection* for *query_vector*.

        Parameters
        ----------
        collection:
            Collection to search; unknown names yield ``[]``.
        query_vector:
            Dense vector for the query.
        limit:
            Maximum number of hits.
        min_score:
            Cosine-similarity threshold; hits scoring below it are dropped.
        """
        ...

    @abstractmethod
    def exists(self, collection: str) -> bool:
        """Return ``True`` when *collection* has been created."""
        ...

    @abstractmethod
    def count(self, collection: str) -> int:
        """Number of records in *collection* (``0`` when absent)."""
        ...

    # -- optional overrides ---------------------------------------------------

    def upsert(
        self,
        collection: str,
        id: str,  # noqa: A002
        text: str,
        vector: Sequence[float],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Insert or replace a single record."""
        record = VectorRecord(
            id=id,
            text=text,
            embedding=tuple(float(x) for x in vector),
            collection=collection,
            metadata=metadata or {},
        )
        self.upsert_many(collection, [record])

    def list_collections(self) -> list[str]:
        """Names of every collection.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support list_collections")

    def delete_collection(self, collection: str) -> None:
        """Drop *collection* and all its records.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete_collection")
