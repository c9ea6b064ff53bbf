"""Interfaces of the external collaborators the core consumes.

The ingestion pipeline and the turn manager only ever see these protocols;
concrete adapters live next to this module and tests inject fakes.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    """Author of a conversation message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    DEVELOPER = "developer"  # retrieved context injected for one turn


class Message(BaseModel):
    """A single ``{role, content}`` conversation entry."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def developer(cls, content: str) -> Message:
        return cls(role=Role.DEVELOPER, content=content)


@runtime_checkable
class EmbeddingClient(Protocol):
    """Turns texts into vectors, same order and count as the input.

    Raises :class:`~rag_chat.exceptions.EmbeddingServiceError` on transport,
    auth or quota failures.
    """

    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


@runtime_checkable
class ChatClient(Protocol):
    """Streams a reply to *history* token by token.

    Raises :class:`~rag_chat.exceptions.ChatServiceError`; an empty stream
    means "no content", not an error.
    """

    def stream_reply(self, history: Sequence[Message]) -> AsyncIterator[str]: ...


@runtime_checkable
class DocumentFetcher(Protocol):
    """Returns the primary readable text of *uri*, or ``""`` on any failure."""

    async def fetch_text(self, uri: str) -> str: ...
