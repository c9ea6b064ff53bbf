"""
Clients — embedding, chat and document-fetch collaborators.

The core (ingestion, retrieval, chat turns) depends only on the protocols in
:mod:`rag_chat.clients.base`.  The concrete adapters wrap LangChain models
and ``requests``/BeautifulSoup and are imported lazily by callers so that
tests never pull in model weights or network clients.
"""

from rag_chat.clients.base import ChatClient, DocumentFetcher, EmbeddingClient, Message, Role

__all__ = [
    "ChatClient",
    "DocumentFetcher",
    "EmbeddingClient",
    "Message",
    "Role",
]
