"""Unit tests for the chunker module."""

import pytest
from langchain_core.documents import Document

from rag_chat.config import Settings, build_chunker
from rag_chat.ingestion.chunker import (
    CharEstimateTokenCounter,
    ParagraphChunker,
    ParagraphTextSplitter,
    WhitespaceTokenCounter,
    chunk_documents,
    chunk_text,
    count_tokens,
    get_token_counter,
)

SAMPLE = "\n".join(
    " ".join(f"w{line}_{i}" for i in range(n))
    for line, n in enumerate([5, 12, 3, 40, 1, 7, 22, 9])
)


def test_chunks_respect_paragraph_limit() -> None:
    chunks = chunk_text(SAMPLE, 8, 20)
    assert chunks
    assert all(c.token_count <= 20 for c in chunks)


def test_line_segments_respect_line_limit() -> None:
    # With paragraph limit == line limit every chunk is exactly one segment.
    chunks = chunk_text(SAMPLE, 8, 8)
    assert all(len(c.text.split()) <= 8 for c in chunks)


def test_concatenation_reconstructs_token_sequence() -> None:
    chunks = chunk_text(SAMPLE, 8, 20)
    rebuilt = " ".join(c.text for c in chunks).split()
    assert rebuilt == SAMPLE.split()


def test_chunk_indices_and_source() -> None:
    chunks = chunk_text(SAMPLE, 8, 20, source="doc.md")
    assert [c.index for c in chunks] == list(range(len(chunks)))
    assert {c.source for c in chunks} == {"doc.md"}


def test_short_lines_are_merged_greedily() -> None:
    text = "a b\nc d\ne f\ng h"
    assert [c.text for c in chunk_text(text, 64, 4)] == ["a b c d", "e f g h"]


def test_long_line_is_split_before_merging() -> None:
    text = " ".join(str(i) for i in range(10))
    assert [c.text for c in chunk_text(text, 3, 6)] == ["0 1 2 3 4 5", "6 7 8 9"]


def test_line_limit_is_capped_by_paragraph_limit() -> None:
    text = " ".join(str(i) for i in range(10))
    chunks = chunk_text(text, 64, 4)
    assert all(c.token_count <= 4 for c in chunks)


@pytest.mark.parametrize("text", ["", "   ", "\n\n\t\n"])
def test_empty_input_yields_no_chunks(text: str) -> None:
    assert chunk_text(text, 64, 512) == []


def test_overlap_repeats_trailing_tokens() -> None:
    text = "a b c d\ne f g h\ni j k l"
    chunks = chunk_text(text, 64, 6, overlap=2)
    assert [c.text for c in chunks] == ["a b c d", "c d e f g h", "g h i j k l"]
    assert all(c.token_count <= 6 for c in chunks)


def test_overlap_keeps_paragraph_bound() -> None:
    with_overlap = chunk_text(SAMPLE, 8, 20, overlap=3)
    assert all(c.token_count <= 20 for c in with_overlap)
    assert len(with_overlap) >= len(chunk_text(SAMPLE, 8, 20))


def test_char_estimate_counter_prices_long_words() -> None:
    counter = CharEstimateTokenCounter()
    assert counter.word_cost("abc") == 1
    assert counter.word_cost("abcdefgh") == 2
    assert counter.word_cost("abcdefghi") == 3
    assert count_tokens("abcd abcde", counter) == 3


def test_over_length_word_is_kept_whole() -> None:
    word = "x" * 40  # 10 tokens under the char estimate
    chunks = chunk_text(f"a b {word} c", 4, 4, token_counter=CharEstimateTokenCounter())
    assert [c.text for c in chunks] == ["a b", word, "c"]


@pytest.mark.parametrize(
    ("line", "paragraph", "overlap"),
    [(0, 10, 0), (10, 0, 0), (10, 10, -1), (10, 10, 10)],
)
def test_invalid_limits_raise(line: int, paragraph: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", line, paragraph, overlap)


def test_get_token_counter() -> None:
    assert isinstance(get_token_counter("whitespace"), WhitespaceTokenCounter)
    assert isinstance(get_token_counter("char_estimate"), CharEstimateTokenCounter)
    with pytest.raises(ValueError, match="Unknown token counter"):
        get_token_counter("tiktoken")


def test_build_chunker_from_settings() -> None:
    cfg = Settings(_env_file=None, max_tokens_per_line=16, max_tokens_per_paragraph=128, token_counter="char_estimate")
    chunker = build_chunker(cfg)
    assert isinstance(chunker, ParagraphChunker)
    assert (chunker.max_tokens_per_line, chunker.max_tokens_per_paragraph) == (16, 128)
    assert isinstance(chunker.token_counter, CharEstimateTokenCounter)


# ── LangChain adapter ──────────────────────────────────────────────────


def test_text_splitter_matches_chunk_text() -> None:
    splitter = ParagraphTextSplitter(max_tokens_per_line=8, max_tokens_per_paragraph=20)
    assert splitter.split_text(SAMPLE) == [c.text for c in chunk_text(SAMPLE, 8, 20)]


def test_chunk_documents_splits_long_text() -> None:
    """A document longer than the paragraph limit should be split."""
    long_text = "word " * 500
    docs = [Document(page_content=long_text, metadata={"source": "test"})]
    chunks = chunk_documents(docs, max_tokens_per_paragraph=128)
    assert len(chunks) > 1
    assert [c.metadata["chunk_index"] for c in chunks] == list(range(len(chunks)))


def test_chunk_documents_preserves_metadata() -> None:
    """Metadata from the source document should be preserved in chunks."""
    docs = [Document(page_content="Short text.", metadata={"source": "test.md"})]
    chunks = chunk_documents(docs)
    assert all(c.metadata.get("source") == "test.md" for c in chunks)


def test_chunk_documents_empty_input() -> None:
    """An empty list should return an empty list."""
    assert chunk_documents([]) == []
