"""Conversation state and the per-turn augmented view.

The persisted conversation is an append-only turn log.  Retrieved context
never enters it: every chat call receives a fresh *augmented view* built by
:class:`AugmentedHistoryBuilder` (log + optional context + user message),
which is simply dropped once the call returns.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rag_chat.clients.base import Message, Role
from rag_chat.exceptions import ConcurrentTurnError
from rag_chat.retrieval.models import SearchHit


class ConversationState:
    """Ordered, append-only message log owned by one session.

    Only ``system``, ``user`` and ``assistant`` messages are ever stored;
    user/assistant pairs are committed together at the end of a turn.
    """

    def __init__(self, system_prompt: str | None = None, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        if system_prompt:
            self._messages.append(Message.system(system_prompt))
        for msg in messages:
            self._check_persistable(msg)
            self._messages.append(msg)
        self._turn_active = False

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def turn_active(self) -> bool:
        return self._turn_active

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def commit_exchange(self, user: Message, assistant: Message) -> None:
        """Append a completed user/assistant exchange."""
        if user.role is not Role.USER or assistant.role is not Role.ASSISTANT:
            raise ValueError("an exchange is a user message followed by an assistant message")
        self._messages.extend((user, assistant))

    @contextmanager
    def exclusive_turn(self) -> Iterator[None]:
        """Mark a turn in flight; a second concurrent turn raises."""
        if self._turn_active:
            raise ConcurrentTurnError("a turn is already running on this conversation")
        self._turn_active = True
        try:
            yield
        finally:
            self._turn_active = False

    @staticmethod
    def _check_persistable(msg: Message) -> None:
        if msg.role is Role.DEVELOPER:
            raise ValueError("retrieved context cannot be stored in the conversation log")


@dataclass(frozen=True)
class AugmentedView:
    """Messages sent to the chat service for a single call.

    Attributes
    ----------
    messages:
        Conversation log, then the optional context message, then the user
        message.
    context_index:
        Position of the context message inside :attr:`messages`, or ``None``
        when nothing was injected.
    """

    messages: tuple[Message, ...]
    context_index: int | None = None


class AugmentedHistoryBuilder:
    """Builds an :class:`AugmentedView` on top of a conversation.

    Usage::

        view = (
            AugmentedHistoryBuilder(state)
            .with_context(context_text, preamble="Here's some additional information:")
            .with_user_message(question)
            .build()
        )
    """

    def __init__(self, state: ConversationState) -> None:
        self._base = state.messages
        self._context: Message | None = None
        self._user: Message | None = None

    def with_context(self, text: str, *, preamble: str = "") -> AugmentedHistoryBuilder:
        if text:
            content = f"{preamble}\n{text}" if preamble else text
            self._context = Message.developer(content)
        return self

    def with_user_message(self, text: str) -> AugmentedHistoryBuilder:
        self._user = Message.user(text)
        return self

    def build(self) -> AugmentedView:
        if self._user is None:
            raise ValueError("an augmented view needs a user message")
        messages = list(self._base)
        context_index = None
        if self._context is not None:
            context_index = len(messages)
            messages.append(self._context)
        messages.append(self._user)
        return AugmentedView(messages=tuple(messages), context_index=context_index)


# ---------------------------------------------------------------------------
# Turn bookkeeping
# ---------------------------------------------------------------------------


class TurnPhase(str, Enum):
    """States a turn moves through, in order."""

    IDLE = "idle"
    QUERY_RECEIVED = "query_received"
    CONTEXT_SEARCHED = "context_searched"
    CONTEXT_INJECTED = "context_injected"
    REPLY_AWAITED = "reply_awaited"
    REPLY_APPENDED = "reply_appended"
    CONTEXT_REMOVED = "context_removed"


class TurnStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"  # the chat service streamed no content
    FAILED = "failed"
    ABORTED = "aborted"  # the consumer stopped reading the reply


@dataclass
class TurnStep:
    """One phase transition of a turn.

    Attributes
    ----------
    phase:
        The phase entered.
    detail:
        Short human-readable note (hit count, reply length, …).
    """

    phase: TurnPhase
    detail: str = ""


@dataclass
class TurnResult:
    """Everything observable about one finished turn."""

    status: TurnStatus = TurnStatus.ABORTED
    reply: str = ""
    context: str = ""
    context_index: int | None = None
    hits: list[SearchHit] = field(default_factory=list)
    error: str | None = None
    trace: list[TurnStep] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is TurnStatus.OK

    @property
    def phases(self) -> list[TurnPhase]:
        return [step.phase for step in self.trace]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reply": self.reply,
            "context": self.context,
            "sources": [hit.short_ref() for hit in self.hits],
            "error": self.error,
            "phases": [p.value for p in self.phases],
        }
