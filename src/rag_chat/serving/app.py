"""FastAPI application exposing ingestion, search and RAG chat over REST."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from rag_chat.chat.session import SessionRegistry
from rag_chat.exceptions import DimensionMismatchError, ServiceError
from rag_chat.ingestion.pipeline import IngestionReport
from rag_chat.retrieval.models import SearchHit
from rag_chat.services import Services

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class IngestRequest(BaseModel):
    """Sources to fetch, chunk, embed and store."""

    sources: list[str] = Field(min_length=1)
    collection: str | None = None
    concurrency: int | None = Field(default=None, ge=1)


class SearchRequest(BaseModel):
    query: str
    collection: str | None = None
    limit: int | None = Field(default=None, ge=0)
    min_score: float | None = None


class SearchResponse(BaseModel):
    hits: list[SearchHit] = []


class ChatRequest(BaseModel):
    """One user message; omit ``session_id`` to start a new conversation."""

    message: str = Field(min_length=1)
    session_id: str | None = None


class ChatResponse(BaseModel):
    session_id: str
    status: str
    reply: str = ""
    context: str = ""
    sources: list[str] = []
    error: str | None = None


class CapabilityRequest(BaseModel):
    query: str = ""


class CapabilityResponse(BaseModel):
    name: str
    result: str


# ── Application factory ───────────────────────────────────────────────
def create_app(services: Services | None = None, sessions: SessionRegistry | None = None) -> FastAPI:
    """Build the app.

    When *services* is omitted they are built from settings on first use,
    so importing this module never loads a model.  *sessions* bounds the
    chat conversations held in memory.
    """
    app = FastAPI(
        title="RAG Chat API",
        version="0.1.0",
        description="Retrieval-augmented chat over an ingested document collection.",
    )
    app.state.services = services
    app.state.sessions = sessions if sessions is not None else SessionRegistry()

    def get_services(request: Request) -> Services:
        if request.app.state.services is None:
            request.app.state.services = Services.from_settings()
        return request.app.state.services

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.post("/ingest", response_model=IngestionReport)
    async def ingest(body: IngestRequest, request: Request) -> IngestionReport:
        svc = get_services(request)
        try:
            return await svc.pipeline.ingest(body.collection or svc.collection, body.sources, body.concurrency)
        except DimensionMismatchError as exc:
            logger.error("Ingestion aborted: %s", exc)
            raise HTTPException(status_code=409, detail=str(exc)) from exc

    @app.post("/search", response_model=SearchResponse)
    async def search(body: SearchRequest, request: Request) -> SearchResponse:
        svc = get_services(request)
        try:
            hits = await svc.retriever.search(
                body.query, collection=body.collection, limit=body.limit, min_score=body.min_score
            )
        except ServiceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except DimensionMismatchError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return SearchResponse(hits=hits)

    @app.post("/chat", response_model=ChatResponse)
    async def chat(body: ChatRequest, request: Request) -> ChatResponse:
        svc = get_services(request)
        sessions: SessionRegistry = request.app.state.sessions
        session_id = body.session_id or uuid.uuid4().hex
        session = sessions.get_or_create(session_id, svc.new_session)

        try:
            result = await session.ask(body.message)
        except DimensionMismatchError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        payload: dict[str, Any] = result.to_dict()
        payload.pop("phases")
        return ChatResponse(session_id=session_id, **payload)

    @app.delete("/chat/{session_id}", status_code=204)
    async def end_chat(session_id: str, request: Request) -> None:
        if not request.app.state.sessions.delete(session_id):
            raise HTTPException(status_code=404, detail=f"Unknown session {session_id!r}")

    @app.get("/capabilities")
    async def capabilities(request: Request) -> list[dict[str, Any]]:
        return get_services(request).capabilities.describe()

    @app.post("/capabilities/{name}", response_model=CapabilityResponse)
    async def invoke_capability(name: str, body: CapabilityRequest, request: Request) -> CapabilityResponse:
        registry = get_services(request).capabilities
        if name not in registry:
            raise HTTPException(status_code=404, detail=f"Unknown capability {name!r}")
        try:
            result = await registry.invoke(name, body.query)
        except ServiceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return CapabilityResponse(name=name, result=result)

    return app


app = create_app()
