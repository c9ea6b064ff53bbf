"""
Serving — FastAPI application for ingestion, search and RAG chat.

Run locally with ``uvicorn rag_chat.serving.app:app``.
"""
