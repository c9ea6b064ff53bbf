"""Exception hierarchy shared by ingestion, retrieval and chat.

Failures local to one unit of work (one source, one turn) are absorbed at
that unit's boundary; :class:`DimensionMismatchError` is the exception that
always propagates to the caller.
"""

from __future__ import annotations


class RagChatError(Exception):
    """Base exception for every error raised by this package."""


# ── Ingestion ─────────────────────────────────────────────────────────


class IngestionError(RagChatError):
    """A single source could not be turned into indexed chunks.

    Parameters
    ----------
    message:
        Human-readable description.
    source:
        URI or path of the source that failed.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class NetworkError(IngestionError):
    """Fetching a source failed or exceeded its time budget."""


class ParseError(IngestionError):
    """A source was fetched but yielded no readable text."""


# ── External services ─────────────────────────────────────────────────


class ServiceError(RagChatError):
    """Transport, auth or quota failure of an external model service."""

    def __init__(self, message: str, service: str | None = None) -> None:
        super().__init__(message)
        self.service = service


class EmbeddingServiceError(ServiceError):
    """The embedding service failed or returned an unusable result."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="embedding")


class ChatServiceError(ServiceError):
    """The chat-completion service failed while producing a reply."""

    def __init__(self, message: str) -> None:
        super().__init__(message, service="chat")


# ── Invariants ────────────────────────────────────────────────────────


class DimensionMismatchError(RagChatError, ValueError):
    """A vector's length differs from its collection's dimensionality.

    This is a configuration error (two embedding models writing into one
    collection, a truncated vector, …) and is never coerced.
    """

    def __init__(self, collection: str, expected: int, actual: int) -> None:
        super().__init__(
            f"Collection {collection!r} holds {expected}-dimensional vectors, got {actual}"
        )
        self.collection = collection
        self.expected = expected
        self.actual = actual


class ConcurrentTurnError(RagChatError, RuntimeError):
    """A turn was started on a conversation that already has one in flight."""
