"""
Ingestion — document fetching, chunking, and embedding into the vector store.

This module is responsible for the ETL-like pipeline that converts raw
sources (web pages, markdown, plain-text files) into embedded chunks stored
in a vector collection.
"""

from rag_chat.ingestion.chunker import (
    CharEstimateTokenCounter,
    Chunk,
    ParagraphChunker,
    ParagraphTextSplitter,
    WhitespaceTokenCounter,
    chunk_text,
)
from rag_chat.ingestion.pipeline import IngestionPipeline, IngestionReport

__all__ = [
    "CharEstimateTokenCounter",
    "Chunk",
    "IngestionPipeline",
    "IngestionReport",
    "ParagraphChunker",
    "ParagraphTextSplitter",
    "WhitespaceTokenCounter",
    "chunk_text",
]
