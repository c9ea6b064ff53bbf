"""Text chunking — line segments merged greedily into paragraph chunks.

Token counting policy
---------------------
A *word* is a maximal run of non-whitespace characters (``str.split()``).
Chunk limits are expressed in tokens, and a :class:`TokenCounter` decides
what one word costs:

* :class:`WhitespaceTokenCounter` (default) — every word costs 1 token.
* :class:`CharEstimateTokenCounter` — a word costs ``ceil(len(word) / 4)``
  tokens, the usual ≈4 characters-per-token estimate.

Words are never split.  A word that alone exceeds a limit is emitted as a
segment of its own, so no text is lost.  Emitted chunks join their words
with single spaces.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from langchain_text_splitters import TextSplitter
from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from langchain_core.documents import Document


class TokenCounter(Protocol):
    """Strategy that prices a single whitespace-delimited word in tokens."""

    name: str

    def word_cost(self, word: str) -> int: ...


class WhitespaceTokenCounter:
    """One token per word."""

    name = "whitespace"

    def word_cost(self, word: str) -> int:
        return 1


class CharEstimateTokenCounter:
    """``ceil(len(word) / chars_per_token)`` tokens per word."""

    name = "char_estimate"

    def __init__(self, chars_per_token: int = 4) -> None:
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token

    def word_cost(self, word: str) -> int:
        return max(1, math.ceil(len(word) / self.chars_per_token))


TOKEN_COUNTERS: dict[str, type] = {
    WhitespaceTokenCounter.name: WhitespaceTokenCounter,
    CharEstimateTokenCounter.name: CharEstimateTokenCounter,
}


def get_token_counter(name: str) -> TokenCounter:
    """Return the counter registered under *name*."""
    try:
        return TOKEN_COUNTERS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown token counter {name!r}; choose from {sorted(TOKEN_COUNTERS)}"
        ) from None


def count_tokens(text: str, counter: TokenCounter | None = None) -> int:
    """Total cost of every word in *text*."""
    counter = counter or WhitespaceTokenCounter()
    return sum(counter.word_cost(w) for w in text.split())


class Chunk(BaseModel):
    """A bounded-length passage cut from one source document."""

    model_config = ConfigDict(frozen=True)

    text: str
    source: str = ""
    index: int = 0
    token_count: int = 0


# ---------------------------------------------------------------------------
# Algorithm
# ---------------------------------------------------------------------------

_Segment = list[tuple[str, int]]  # (word, cost) pairs


def _split_lines(text: str, limit: int, counter: TokenCounter) -> list[_Segment]:
    """Pack the words of each source line into segments of at most *limit* tokens."""
    segments: list[_Segment] = []
    for line in text.splitlines():
        current: _Segment = []
        used = 0
        for word in line.split():
            cost = counter.word_cost(word)
            if current and used + cost > limit:
                segments.append(current)
                current, used = [], 0
            current.append((word, cost))
            used += cost
        if current:
            segments.append(current)
    return segments


def _overlap_tail(words: _Segment, budget: int) -> _Segment:
    """Trailing words of *words* whose combined cost fits in *budget*."""
    tail: _Segment = []
    used = 0
    for word, cost in reversed(words):
        if used + cost > budget:
            break
        tail.append((word, cost))
        used += cost
    tail.reverse()
    return tail


def _merge_paragraphs(segments: Sequence[_Segment], limit: int, overlap: int) -> list[_Segment]:
    """Greedily merge line segments into paragraphs of at most *limit* tokens."""
    paragraphs: list[_Segment] = []
    current: _Segment = []
    used = 0
    fresh = False  # whether *current* holds anything beyond carried overlap

    for segment in segments:
        cost = sum(c for _, c in segment)
        if fresh and used + cost > limit:
            paragraphs.append(current)
            current = _overlap_tail(current, min(overlap, limit - cost)) if overlap else []
            used = sum(c for _, c in current)
        current = current + segment
        used += cost
        fresh = True

    if fresh:
        paragraphs.append(current)
    return paragraphs


def split_text(
    text: str,
    max_tokens_per_line: int,
    max_tokens_per_paragraph: int,
    overlap: int = 0,
    *,
    token_counter: TokenCounter | None = None,
) -> list[str]:
    """Split *text* into paragraph strings; see :func:`chunk_text`."""
    _validate_limits(max_tokens_per_line, max_tokens_per_paragraph, overlap)
    counter = token_counter or WhitespaceTokenCounter()
    line_limit = min(max_tokens_per_line, max_tokens_per_paragraph)
    segments = _split_lines(text, line_limit, counter)
    paragraphs = _merge_paragraphs(segments, max_tokens_per_paragraph, overlap)
    return [" ".join(word for word, _ in p) for p in paragraphs]


def chunk_text(
    text: str,
    max_tokens_per_line: int,
    max_tokens_per_paragraph: int,
    overlap: int = 0,
    *,
    source: str = "",
    token_counter: TokenCounter | None = None,
) -> list[Chunk]:
    """Split *text* into bounded-size :class:`Chunk` objects.

    Parameters
    ----------
    text:
        Raw document text.
    max_tokens_per_line:
        Upper bound for the line segments produced in the first pass.
    max_tokens_per_paragraph:
        Upper bound for every emitted chunk (a lone over-length word excepted).
    overlap:
        Number of trailing tokens of a chunk repeated at the start of the
        next one.
    source:
        Identifier stamped on every chunk.
    token_counter:
        Word pricing policy; defaults to :class:`WhitespaceTokenCounter`.

    Returns
    -------
    list[Chunk]
        Chunks in document order; empty for empty input.
    """
    counter = token_counter or WhitespaceTokenCounter()
    paragraphs = split_text(
        text,
        max_tokens_per_line,
        max_tokens_per_paragraph,
        overlap,
        token_counter=counter,
    )
    return [
        Chunk(text=p, source=source, index=i, token_count=count_tokens(p, counter))
        for i, p in enumerate(paragraphs)
    ]


def _validate_limits(line_limit: int, paragraph_limit: int, overlap: int) -> None:
    if line_limit < 1 or paragraph_limit < 1:
        raise ValueError("token limits must be >= 1")
    if overlap < 0:
        raise ValueError("overlap must be >= 0")
    if overlap >= paragraph_limit:
        raise ValueError(
            f"overlap ({overlap}) must be < max_tokens_per_paragraph ({paragraph_limit})"
        )


# ---------------------------------------------------------------------------
# Reusable chunker / LangChain adapter
# ---------------------------------------------------------------------------


class ParagraphChunker:
    """Chunking parameters bundled for reuse by the ingestion pipeline."""

    def __init__(
        self,
        max_tokens_per_line: int = 64,
        max_tokens_per_paragraph: int = 512,
        overlap: int = 0,
        token_counter: TokenCounter | None = None,
    ) -> None:
        _validate_limits(max_tokens_per_line, max_tokens_per_paragraph, overlap)
        self.max_tokens_per_line = max_tokens_per_line
        self.max_tokens_per_paragraph = max_tokens_per_paragraph
        self.overlap = overlap
        self.token_counter = token_counter or WhitespaceTokenCounter()

    def chunk(self, text: str, source: str = "") -> list[Chunk]:
        return chunk_text(
            text,
            self.max_tokens_per_line,
            self.max_tokens_per_paragraph,
            self.overlap,
            source=source,
            token_counter=self.token_counter,
        )

    def as_text_splitter(self) -> ParagraphTextSplitter:
        return ParagraphTextSplitter(
            max_tokens_per_line=self.max_tokens_per_line,
            max_tokens_per_paragraph=self.max_tokens_per_paragraph,
            overlap=self.overlap,
            token_counter=self.token_counter,
        )


class ParagraphTextSplitter(TextSplitter):
    """LangChain ``TextSplitter`` running the line → paragraph algorithm.

    Lets the chunker plug into LangChain document pipelines::

        splitter = ParagraphTextSplitter(max_tokens_per_paragraph=256)
        chunks = splitter.split_documents(docs)
    """

    def __init__(
        self,
        max_tokens_per_line: int = 64,
        max_tokens_per_paragraph: int = 512,
        overlap: int = 0,
        token_counter: TokenCounter | None = None,
        **kwargs,
    ) -> None:
        _validate_limits(max_tokens_per_line, max_tokens_per_paragraph, overlap)
        counter = token_counter or WhitespaceTokenCounter()
        super().__init__(
            chunk_size=max_tokens_per_paragraph,
            chunk_overlap=overlap,
            length_function=lambda s: count_tokens(s, counter),
            **kwargs,
        )
        self._line_limit = max_tokens_per_line
        self._paragraph_limit = max_tokens_per_paragraph
        self._overlap_tokens = overlap
        self._counter = counter

    def split_text(self, text: str) -> list[str]:
        return split_text(
            text,
            self._line_limit,
            self._paragraph_limit,
            self._overlap_tokens,
            token_counter=self._counter,
        )


def chunk_documents(
    documents: list[Document],
    max_tokens_per_paragraph: int = 512,
    overlap: int = 0,
    max_tokens_per_line: int = 64,
) -> list[Document]:
    """Split LangChain *documents*, stamping ``chunk_index`` into each chunk's metadata."""
    splitter = ParagraphTextSplitter(
        max_tokens_per_line=max_tokens_per_line,
        max_tokens_per_paragraph=max_tokens_per_paragraph,
        overlap=overlap,
    )
    chunks: list[Document] = []
    for doc in documents:
        for i, piece in enumerate(splitter.split_documents([doc])):
            piece.metadata["chunk_index"] = i
            chunks.append(piece)
    return chunks
