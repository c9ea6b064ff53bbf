"""Domain models for stored vectors and search hits."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class VectorRecord(BaseModel):
    """One embedded passage stored in a collection.

    Attributes
    ----------
    id:
        Identifier, unique within its collection.  Upserting another record
        under the same id supersedes this one.
    text:
        The passage the embedding was computed from.
    embedding:
        Dense vector; every record of a collection has the same length.
    collection:
        Name of the owning collection.
    metadata:
        Provenance such as ``source`` and ``chunk_index``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    embedding: tuple[float, ...]
    collection: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.embedding)


class SearchHit(BaseModel):
    """A record matched by a similarity search, with its cosine score."""

    model_config = ConfigDict(frozen=True)

    score: float
    text: str
    id: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    def short_ref(self) -> str:
        """Return a compact ``[source§chunk]`` reference string."""
        source = self.metadata.get("source", "unknown")
        chunk = self.metadata.get("chunk_index", "?")
        return f"[{source}§{chunk}]"

    def __str__(self) -> str:  # noqa: D105
        return f"{self.score:.3f} {self.short_ref()} {self.text[:120]}…"
