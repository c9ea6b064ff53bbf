"""Named capabilities the assistant (or an HTTP caller) can invoke.

Each capability is an async ``(query) -> text`` function registered under a
name.  The registry is explicit: nothing is discovered by reflection, and a
capability only exists once it has been registered.

Dependency-injection note
-------------------------
:func:`retrieval_capability` closes over a :class:`KnowledgeRetriever`, so
tests can register one backed by an in-memory store and a fake embedder.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any

from langchain_core.tools import StructuredTool

from rag_chat.retrieval.retriever import KnowledgeRetriever

logger = logging.getLogger(__name__)

CapabilityFn = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class Capability:
    name: str
    description: str
    func: CapabilityFn

    async def __call__(self, query: str) -> str:
        return await self.func(query)

    def as_langchain_tool(self) -> StructuredTool:
        return StructuredTool.from_function(
            coroutine=self.func,
            name=self.name,
            description=self.description,
        )


class CapabilityRegistry:
    """Mapping of capability name → :class:`Capability`."""

    def __init__(self) -> None:
        self._capabilities: dict[str, Capability] = {}

    def register(self, capability: Capability) -> Capability:
        if capability.name in self._capabilities:
            raise ValueError(f"Capability {capability.name!r} is already registered")
        self._capabilities[capability.name] = capability
        return capability

    def get(self, name: str) -> Capability:
        try:
            return self._capabilities[name]
        except KeyError:
            raise KeyError(f"Unknown capability {name!r}; available: {self.names()}") from None

    def names(self) -> list[str]:
        return sorted(self._capabilities)

    def __contains__(self, name: object) -> bool:
        return name in self._capabilities

    def __len__(self) -> int:
        return len(self._capabilities)

    def describe(self) -> list[dict[str, Any]]:
        return [
            {"name": cap.name, "description": cap.description}
            for cap in sorted(self._capabilities.values(), key=lambda c: c.name)
        ]

    async def invoke(self, name: str, query: str) -> str:
        capability = self.get(name)
        logger.info("Invoking capability %r", name)
        return await capability(query)

    def as_langchain_tools(self) -> list[StructuredTool]:
        """Export every capability as a LangChain tool (e.g. for ``bind_tools``)."""
        return [self._capabilities[name].as_langchain_tool() for name in self.names()]


# ---------------------------------------------------------------------------
# Built-in capabilities
# ---------------------------------------------------------------------------


def retrieval_capability(
    retriever: KnowledgeRetriever,
    *,
    name: str = "search_knowledge",
    limit: int | None = None,
    min_score: float | None = None,
) -> Capability:
    """Search the knowledge collection and return the matching passages.

    Returns an empty string when nothing clears the relevance threshold.
    """

    async def search_knowledge(query: str) -> str:
        hits = await retriever.search(query, limit=limit, min_score=min_score)
        logger.info("%s returned %d hit(s) for %r", name, len(hits), query)
        return "\n".join(hit.text for hit in hits)

    return Capability(
        name=name,
        description="Find passages in the knowledge base relevant to a natural-language query.",
        func=search_knowledge,
    )


def clock_capability(now: Callable[[], datetime] | None = None) -> Capability:
    """Current UTC time in RFC 1123 form, e.g. ``Tue, 20 Oct 2026 09:30:00 GMT``."""
    clock = now or (lambda: datetime.now(timezone.utc))

    async def current_time(query: str = "") -> str:
        return format_datetime(clock().astimezone(timezone.utc), usegmt=True)

    return Capability(
        name="current_time",
        description="Return the current date and time (UTC). The query is ignored.",
        func=current_time,
    )


def build_registry(retriever: KnowledgeRetriever, **search_kwargs: Any) -> CapabilityRegistry:
    """Registry with the built-in ``search_knowledge`` and ``current_time``."""
    registry = CapabilityRegistry()
    registry.register(retrieval_capability(retriever, **search_kwargs))
    registry.register(clock_capability())
    return registry
