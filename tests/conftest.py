"""Shared pytest configuration, fakes and fixtures."""

from __future__ import annotations

import asyncio
import re
import zlib
from collections.abc import AsyncIterator, Sequence

import pytest

from rag_chat.clients.base import Message
from rag_chat.config import Settings
from rag_chat.exceptions import ChatServiceError, EmbeddingServiceError
from rag_chat.ingestion.chunker import ParagraphChunker
from rag_chat.retrieval.memory_store import InMemoryVectorStore
from rag_chat.services import Services


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


_WORD = re.compile(r"[a-z0-9]+")


def words(text: str) -> list[str]:
    return _WORD.findall(text.lower())


# ── Fakes ───────────────────────────────────────────────────────────────


class FakeEmbeddingClient:
    """Deterministic bag-of-words embedder.

    With a *vocabulary*, component ``i`` counts occurrences of
    ``vocabulary[i]``; otherwise words are hashed into ``dimension`` buckets.
    Texts containing any of *fail_on* raise :class:`EmbeddingServiceError`.
    """

    def __init__(
        self,
        vocabulary: Sequence[str] | None = None,
        *,
        dimension: int = 64,
        fail_on: Sequence[str] = (),
    ) -> None:
        self.vocabulary = list(vocabulary) if vocabulary else None
        self.dimension = len(self.vocabulary) if self.vocabulary else dimension
        self.fail_on = list(fail_on)
        self.calls: list[list[str]] = []

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimension
        for word in words(text):
            if self.vocabulary is not None:
                if word in self.vocabulary:
                    vec[self.vocabulary.index(word)] += 1.0
            else:
                vec[zlib.crc32(word.encode()) % self.dimension] += 1.0
        return vec

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        texts = list(texts)
        self.calls.append(texts)
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise EmbeddingServiceError(f"embedding refused for {text[:20]!r}")
        return [self.vector(t) for t in texts]


class ScriptedChatClient:
    """Streams pre-scripted replies, one per call, recording every history seen.

    A reply is a list of tokens.  ``fail_after`` makes a call raise
    :class:`ChatServiceError` after yielding that many tokens.
    """

    def __init__(self, replies: Sequence[Sequence[str]] = (), *, fail_after: int | None = None) -> None:
        self.replies = [list(r) for r in replies]
        self.fail_after = fail_after
        self.histories: list[tuple[Message, ...]] = []

    async def stream_reply(self, history: Sequence[Message]) -> AsyncIterator[str]:
        self.histories.append(tuple(history))
        tokens = self.replies.pop(0) if self.replies else ["ok"]
        for i, token in enumerate(tokens):
            if self.fail_after is not None and i >= self.fail_after:
                raise ChatServiceError("connection reset by peer")
            await asyncio.sleep(0)
            yield token
        if self.fail_after is not None and self.fail_after >= len(tokens):
            raise ChatServiceError("connection reset by peer")


class DictFetcher:
    """Serves documents from a dict; unknown sources yield ``""``.

    ``delays`` maps a source to seconds slept before answering and
    ``errors`` maps a source to an exception raised instead.
    """

    def __init__(
        self,
        documents: dict[str, str],
        *,
        delays: dict[str, float] | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.documents = documents
        self.delays = delays or {}
        self.errors = errors or {}
        self.fetched: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch_text(self, uri: str) -> str:
        self.fetched.append(uri)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(uri, 0.01))
            if uri in self.errors:
                raise self.errors[uri]
            return self.documents.get(uri, "")
        finally:
            self.in_flight -= 1


# ── Fixtures ────────────────────────────────────────────────────────────

ANIMAL_VOCABULARY = [
    "reptile", "lizard", "snake", "scales", "cold", "blooded",
    "bird", "feather", "fly", "fish", "swim", "water",
]

ANIMAL_DOCUMENTS = {
    "docs/reptiles.md": "A reptile is a cold blooded animal such as a lizard or a snake.",
    "docs/scales.md": "Every reptile has scales.",
    "docs/birds.md": "A bird has a feather coat and can fly.",
    "docs/fish.md": "A fish can swim under water.",
}


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        collection_name="test-memory",
        search_limit=3,
        min_relevance_score=0.4,
        ingest_concurrency=2,
        fetch_timeout_seconds=1.0,
    )


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def animal_embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient(ANIMAL_VOCABULARY)


@pytest.fixture()
def animal_fetcher() -> DictFetcher:
    return DictFetcher(dict(ANIMAL_DOCUMENTS))


@pytest.fixture()
def chat_client() -> ScriptedChatClient:
    return ScriptedChatClient([["Reptiles are ", "cold-blooded."]])


@pytest.fixture()
def services(
    store: InMemoryVectorStore,
    animal_embedder: FakeEmbeddingClient,
    animal_fetcher: DictFetcher,
    chat_client: ScriptedChatClient,
    test_settings: Settings,
) -> Services:
    return Services(
        store,
        animal_embedder,
        animal_fetcher,
        chat_client,
        chunker=ParagraphChunker(64, 512),
        cfg=test_settings,
    )


@pytest.fixture()
def populated_services(services: Services) -> Services:
    asyncio.run(services.pipeline.ingest(services.collection, list(ANIMAL_DOCUMENTS)))
    return services
