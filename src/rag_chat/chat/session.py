"""Chat session — one conversation plus the turn manager that drives it."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from collections.abc import Callable

from rag_chat.chat.state import ConversationState, TurnResult
from rag_chat.chat.turn import TurnContextManager
from rag_chat.config import settings

logger = logging.getLogger(__name__)

EXIT_COMMAND = "exit"


def is_exit_command(text: str) -> bool:
    return text.strip().lower() == EXIT_COMMAND


class ChatSession:
    """A conversation whose turns are serialised by an :class:`asyncio.Lock`.

    Parameters
    ----------
    manager:
        Runs each turn.
    collection / limit / min_score:
        Search parameters used for every turn; default to the settings.
    system_prompt:
        First message of the conversation.
    """

    def __init__(
        self,
        manager: TurnContextManager,
        *,
        collection: str | None = None,
        limit: int | None = None,
        min_score: float | None = None,
        system_prompt: str | None = None,
    ) -> None:
        self.manager = manager
        self.collection = collection or settings.collection_name
        self.limit = settings.search_limit if limit is None else limit
        self.min_score = settings.min_relevance_score if min_score is None else min_score
        self.state = ConversationState(settings.system_prompt if system_prompt is None else system_prompt)
        self._lock = asyncio.Lock()

    async def ask(self, text: str, *, on_token: Callable[[str], None] | None = None) -> TurnResult:
        async with self._lock:
            result = await self.manager.run_turn(
                self.state,
                text,
                self.collection,
                self.limit,
                self.min_score,
                on_token=on_token,
            )
        logger.debug("Turn finished with status %s; %d message(s) in conversation", result.status.value, len(self.state))
        return result


class SessionRegistry:
    """Live :class:`ChatSession` objects keyed by session id.

    Sessions idle for longer than *ttl_seconds* are dropped on the next
    access, and once *max_sessions* are held the least recently used one is
    evicted to make room.

    Parameters
    ----------
    max_sessions:
        Upper bound on stored sessions; defaults to ``settings.max_chat_sessions``.
    ttl_seconds:
        Idle lifetime of a session; defaults to ``settings.chat_session_ttl_seconds``.
    clock:
        Monotonic time source.
    """

    def __init__(
        self,
        *,
        max_sessions: int | None = None,
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max_sessions or settings.max_chat_sessions
        self.ttl_seconds = ttl_seconds or settings.chat_session_ttl_seconds
        self._clock = clock
        # session id -> (session, last active); least recently used first
        self._sessions: OrderedDict[str, tuple[ChatSession, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_or_create(self, session_id: str, factory: Callable[[], ChatSession]) -> ChatSession:
        """Return the session for *session_id*, creating it with *factory* if needed."""
        self.cleanup_expired()
        now = self._clock()
        entry = self._sessions.get(session_id)
        if entry is not None:
            session = entry[0]
            self._sessions[session_id] = (session, now)
            self._sessions.move_to_end(session_id)
            return session

        while len(self._sessions) >= self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted chat session %s (limit %d)", evicted, self.max_sessions)
        session = factory()
        self._sessions[session_id] = (session, now)
        logger.info("Started chat session %s", session_id)
        return session

    def delete(self, session_id: str) -> bool:
        """Forget *session_id*; returns ``False`` when it was not stored."""
        if self._sessions.pop(session_id, None) is None:
            return False
        logger.info("Ended chat session %s", session_id)
        return True

    def cleanup_expired(self) -> int:
        """Drop sessions idle for longer than the TTL; returns how many went."""
        cutoff = self._clock() - self.ttl_seconds
        expired = [sid for sid, (_, last_active) in self._sessions.items() if last_active < cutoff]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Expired %d idle chat session(s)", len(expired))
        return len(expired)
