"""
Chat — retrieval-augmented conversation turns.

Public API
----------
- :class:`TurnContextManager` — runs one turn (search, inject, stream, commit).
- :class:`ConversationState` — the append-only message log of a session.
- :class:`ChatSession` — a conversation whose turns are serialised.
- :class:`SessionRegistry` — bounded, expiring map of live sessions.
- :class:`CapabilityRegistry` — named async capabilities (``search_knowledge`` …).
"""

from rag_chat.chat.session import ChatSession, SessionRegistry, is_exit_command
from rag_chat.chat.state import (
    AugmentedHistoryBuilder,
    AugmentedView,
    ConversationState,
    TurnPhase,
    TurnResult,
    TurnStatus,
    TurnStep,
)
from rag_chat.chat.tools import Capability, CapabilityRegistry, build_registry
from rag_chat.chat.turn import TurnContextManager

__all__ = [
    "AugmentedHistoryBuilder",
    "AugmentedView",
    "Capability",
    "CapabilityRegistry",
    "ChatSession",
    "ConversationState",
    "SessionRegistry",
    "TurnContextManager",
    "TurnPhase",
    "TurnResult",
    "TurnStatus",
    "TurnStep",
    "build_registry",
    "is_exit_command",
]
