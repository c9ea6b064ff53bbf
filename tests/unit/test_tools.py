"""Unit tests for the capability registry."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from rag_chat.chat.tools import (
    Capability,
    CapabilityRegistry,
    build_registry,
    clock_capability,
    retrieval_capability,
)


def test_default_registry_names(populated_services) -> None:
    registry = build_registry(populated_services.retriever)
    assert registry.names() == ["current_time", "search_knowledge"]
    assert "search_knowledge" in registry
    assert [d["name"] for d in registry.describe()] == ["current_time", "search_knowledge"]


def test_search_knowledge_returns_passages(populated_services) -> None:
    capability = retrieval_capability(populated_services.retriever)
    text = asyncio.run(capability("What is a reptile?"))
    assert text.splitlines()[0] == "Every reptile has scales."


def test_search_knowledge_with_nothing_relevant(populated_services) -> None:
    capability = retrieval_capability(populated_services.retriever)
    assert asyncio.run(capability("Good morning")) == ""


def test_clock_capability_is_rfc1123() -> None:
    fixed = datetime(2026, 10, 20, 9, 30, tzinfo=timezone.utc)
    capability = clock_capability(lambda: fixed)
    assert asyncio.run(capability("ignored")) == "Tue, 20 Oct 2026 09:30:00 GMT"


def test_registry_rejects_duplicates_and_unknown_names() -> None:
    registry = CapabilityRegistry()

    async def echo(query: str) -> str:
        return query

    registry.register(Capability("echo", "Echo the query.", echo))
    with pytest.raises(ValueError):
        registry.register(Capability("echo", "again", echo))
    with pytest.raises(KeyError, match="Unknown capability"):
        registry.get("nope")
    assert asyncio.run(registry.invoke("echo", "hi")) == "hi"
    assert len(registry) == 1


def test_capabilities_export_as_langchain_tools(populated_services) -> None:
    registry = build_registry(populated_services.retriever)
    tools = {t.name: t for t in registry.as_langchain_tools()}
    assert set(tools) == {"current_time", "search_knowledge"}
    result = asyncio.run(tools["search_knowledge"].ainvoke({"query": "What is a reptile?"}))
    assert "Every reptile has scales." in result
