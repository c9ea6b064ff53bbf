"""Chat model initialisation and streaming adapter — single place to swap providers.

Supports two modes:

1. **OpenAI cloud** (default) — set ``OPENAI_API_KEY``.
2. **OpenAI-compatible server** — set ``LLM_BASE_URL`` (vLLM, Ollama,
   Azure-compatible gateways, …); ``ChatOpenAI`` works unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from rag_chat.clients.base import Message, Role
from rag_chat.config import Settings, settings
from rag_chat.exceptions import ChatServiceError

logger = logging.getLogger(__name__)


def get_llm(temperature: float | None = None, cfg: Settings | None = None) -> ChatOpenAI:
    """Return the chat model described by *cfg* (default: global settings).

    When ``llm_base_url`` is set the client is pointed at that
    OpenAI-compatible endpoint; a dummy API key (``"EMPTY"``) is used
    because local servers usually do not require authentication.
    """
    cfg = cfg or settings
    kwargs: dict = {
        "model": cfg.llm_model_name,
        "temperature": cfg.llm_temperature if temperature is None else temperature,
    }

    if cfg.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", cfg.llm_base_url)
        kwargs["base_url"] = cfg.llm_base_url
        # LangChain requires a non-empty value.
        kwargs["api_key"] = cfg.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = cfg.openai_api_key

    return ChatOpenAI(**kwargs)


def to_langchain_messages(history: Sequence[Message]) -> list[BaseMessage]:
    """Map conversation messages onto LangChain message classes.

    Injected context (``developer``) travels as a system message so it works
    with every OpenAI-compatible server.
    """
    converted: list[BaseMessage] = []
    for msg in history:
        if msg.role is Role.USER:
            converted.append(HumanMessage(content=msg.content))
        elif msg.role is Role.ASSISTANT:
            converted.append(AIMessage(content=msg.content))
        else:
            converted.append(SystemMessage(content=msg.content))
    return converted


def _chunk_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    # multi-part content blocks
    return "".join(part.get("text", "") for part in content if isinstance(part, dict))


class LangChainChatClient:
    """Adapts a LangChain chat model to :class:`~rag_chat.clients.base.ChatClient`."""

    def __init__(self, llm: Any | None = None) -> None:
        self._llm = llm if llm is not None else get_llm()

    async def stream_reply(self, history: Sequence[Message]) -> AsyncIterator[str]:
        messages = to_langchain_messages(history)
        try:
            async for chunk in self._llm.astream(messages):
                text = _chunk_text(chunk.content)
                if text:
                    yield text
        except Exception as exc:
            raise ChatServiceError(f"Chat completion failed: {exc}") from exc
