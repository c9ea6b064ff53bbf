"""Turn context manager — one retrieval-augmented chat turn.

A turn walks through::

    IDLE → QUERY_RECEIVED → CONTEXT_SEARCHED → [CONTEXT_INJECTED]
         → REPLY_AWAITED → REPLY_APPENDED → CONTEXT_REMOVED → IDLE

1. **Embed & search** the user's text.  An embedding failure ends the turn
   before anything else happens.
2. **Inject** the retrieved passages as one ``developer`` message placed
   right before the user message, in a per-call augmented view.
3. **Stream** the reply from the chat service.
4. **Commit** user + assistant messages to the conversation when the reply
   has content.
5. **Drop** the augmented view, whatever happened in between, so retrieved
   context is re-derived every turn instead of accumulating.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from rag_chat.chat.state import (
    AugmentedHistoryBuilder,
    ConversationState,
    TurnPhase,
    TurnResult,
    TurnStatus,
    TurnStep,
)
from rag_chat.clients.base import ChatClient, Message
from rag_chat.config import settings
from rag_chat.exceptions import RagChatError, ServiceError
from rag_chat.retrieval.retriever import KnowledgeRetriever, format_context

logger = logging.getLogger(__name__)


class TurnContextManager:
    """Runs turns against any :class:`ConversationState`.

    Parameters
    ----------
    retriever:
        Embeds the query and searches the knowledge collection.
    chat:
        Streaming chat-completion client.
    context_preamble:
        Line placed above the retrieved passages in the context message.
    """

    def __init__(
        self,
        retriever: KnowledgeRetriever,
        chat: ChatClient,
        *,
        context_preamble: str | None = None,
    ) -> None:
        self.retriever = retriever
        self.chat = chat
        self.context_preamble = settings.context_preamble if context_preamble is None else context_preamble

    # -- public API -----------------------------------------------------------

    async def run_turn(
        self,
        state: ConversationState,
        user_text: str,
        collection: str | None = None,
        limit: int | None = None,
        min_score: float | None = None,
        *,
        on_token: Callable[[str], None] | None = None,
    ) -> TurnResult:
        """Run one turn to completion.

        Service failures (embedding or chat) are reported through
        :attr:`TurnResult.status` / :attr:`TurnResult.error` instead of
        raised, so a session loop survives them.

        Parameters
        ----------
        state:
            Conversation to extend.
        user_text:
            The user's message.
        collection / limit / min_score:
            Search parameters; default to the retriever's.
        on_token:
            Called with every streamed reply token.
        """
        result = TurnResult()
        stream = self.stream_turn(state, user_text, collection, limit, min_score, result=result)
        try:
            async for token in stream:
                if on_token is not None:
                    on_token(token)
        except ServiceError as exc:
            logger.error("Turn failed: %s", exc)
        finally:
            await stream.aclose()
        return result

    async def stream_turn(
        self,
        state: ConversationState,
        user_text: str,
        collection: str | None = None,
        limit: int | None = None,
        min_score: float | None = None,
        *,
        result: TurnResult | None = None,
    ) -> AsyncIterator[str]:
        """Yield reply tokens as they arrive; details are recorded in *result*.

        Service errors propagate to the consumer.  Closing the generator
        early leaves the conversation unchanged.
        """
        result = result if result is not None else TurnResult()
        with state.exclusive_turn():
            try:
                self._enter(result, TurnPhase.QUERY_RECEIVED, f"{len(user_text)} chars")
                hits = await self.retriever.search(
                    user_text, collection=collection, limit=limit, min_score=min_score
                )
                result.hits = hits
                self._enter(result, TurnPhase.CONTEXT_SEARCHED, f"{len(hits)} hit(s)")

                builder = AugmentedHistoryBuilder(state)
                if hits:
                    result.context = format_context(hits)
                    builder.with_context(result.context, preamble=self.context_preamble)
                view = builder.with_user_message(user_text).build()
                result.context_index = view.context_index
                if view.context_index is not None:
                    self._enter(result, TurnPhase.CONTEXT_INJECTED, f"at index {view.context_index}")

                self._enter(result, TurnPhase.REPLY_AWAITED)
                parts: list[str] = []
                async with aclosing(self.chat.stream_reply(view.messages)) as tokens:
                    async for token in tokens:
                        if token:
                            parts.append(token)
                            yield token
                reply = "".join(parts)
                result.reply = reply

                if reply:
                    state.commit_exchange(Message.user(user_text), Message.assistant(reply))
                    result.status = TurnStatus.OK
                    self._enter(result, TurnPhase.REPLY_APPENDED, f"{len(reply)} chars")
                else:
                    result.status = TurnStatus.EMPTY
                    logger.warning("Chat service returned no content; nothing committed")
            except RagChatError as exc:
                result.status = TurnStatus.FAILED
                result.error = str(exc)
                raise
            finally:
                if result.context_index is not None:
                    self._enter(result, TurnPhase.CONTEXT_REMOVED)
                self._enter(result, TurnPhase.IDLE, result.status.value)

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _enter(result: TurnResult, phase: TurnPhase, detail: str = "") -> None:
        logger.debug("turn → %s %s", phase.value, detail)
        result.trace.append(TurnStep(phase=phase, detail=detail))
