"""Command-line entry point: ``rag-chat {chat,ingest,similarity}``.

Examples::

    # Ingest two pages (skipped if the collection is already populated) and chat
    rag-chat chat --source https://example.com/a --source ./notes.md

    # Ingest only, printing the tally
    rag-chat ingest https://example.com/a https://example.com/b

    # Rank example sentences by cosine similarity to an input
    rag-chat similarity "The best IT company in Denmark."
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable
from typing import TextIO

from rag_chat.chat.session import is_exit_command
from rag_chat.chat.state import TurnStatus
from rag_chat.config import settings
from rag_chat.retrieval.retriever import rank_by_similarity
from rag_chat.services import Services

logger = logging.getLogger(__name__)

SIMILARITY_INPUT = "Sopra Steria is the best IT company in Denmark."
SIMILARITY_EXAMPLES = [
    "Sopra Steria er Danmarks bedste IT-virksomhed.",
    "Sopra Steria is the best IT company in Denmark.",
    "What is the best IT company in Denmark?",
    "Sopra Steria is a leading IT company in Denmark.",
    "Sopra Steria builds IT systems",
    "Sopra Steria is a company.",
    "Denmark is a country.",
    "København ligger i Danmark",
    "My name is Nikolas",
]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_chat(
    services: Services,
    sources: list[str],
    *,
    show_context: bool = False,
    read_line: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> int:
    """Populate the collection if needed, then run the prompt/response loop."""
    out = out or sys.stdout
    report = await services.pipeline.ensure_populated(services.collection, sources)
    print(report.summary(), file=out)
    for uri, reason in report.errors.items():
        print(f"  ✗ {uri}: {reason}", file=out)

    session = services.new_session()
    print("Chat with RAG (type 'exit' to quit):", file=out)
    while True:
        try:
            question = await asyncio.to_thread(read_line, "Me: ")
        except EOFError:
            break
        if is_exit_command(question):
            break
        if not question.strip():
            continue

        printed_prefix = False

        def on_token(token: str) -> None:
            nonlocal printed_prefix
            if not printed_prefix:
                out.write("AI: ")
                printed_prefix = True
            out.write(token)
            out.flush()

        result = await session.ask(question, on_token=on_token)
        if printed_prefix:
            out.write("\n")
        if result.status is TurnStatus.FAILED:
            print(f"[error] {result.error}", file=out)
        elif result.status is TurnStatus.EMPTY:
            print("AI: (no reply)", file=out)
        if show_context and result.context:
            refs = ", ".join(hit.short_ref() for hit in result.hits)
            print(f"--- context {refs} ---\n{result.context}\n---", file=out)
    return 0


async def run_ingest(services: Services, sources: list[str], *, collection: str | None = None,
                     concurrency: int | None = None, out: TextIO | None = None) -> int:
    out = out or sys.stdout
    report = await services.pipeline.ingest(collection or services.collection, sources, concurrency)
    print(report.summary(), file=out)
    for uri, reason in report.errors.items():
        print(f"  ✗ {uri}: {reason}", file=out)
    return 1 if sources and not report.succeeded else 0


async def run_similarity(services: Services, text: str, examples: list[str], *, out: TextIO | None = None) -> int:
    out = out or sys.stdout
    ranked = await rank_by_similarity(services.embedder, text, examples)
    print(f"Input:\n{text}\n", file=out)
    print("Similarity\tExample", file=out)
    for score, example in ranked:
        print(f"{score:.6f}\t{example}", file=out)
    return 0


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rag-chat",
        description="Retrieval-augmented chat over ingested documents",
        epilog=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default=None, help=f"Logging level (default: {settings.log_level})")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Ingest sources if needed, then chat")
    chat.add_argument(
        "--source",
        action="append",
        default=[],
        help="URL or file to ingest (repeatable; defaults to the configured sources)",
    )
    chat.add_argument("--show-context", action="store_true", help="Print the retrieved context after each reply")

    ingest = sub.add_parser("ingest", help="Ingest sources and print the tally")
    ingest.add_argument("sources", nargs="+", help="URLs or file paths")
    ingest.add_argument("--collection", default=None, help=f"Target collection (default: {settings.collection_name})")
    ingest.add_argument("--concurrency", type=int, default=None, help="Sources processed at once")

    similarity = sub.add_parser("similarity", help="Rank example sentences by similarity to an input")
    similarity.add_argument("text", nargs="?", default=SIMILARITY_INPUT, help="Input sentence")
    similarity.add_argument(
        "--example",
        action="append",
        default=[],
        help="Sentence to compare against (repeatable; defaults to a built-in list)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    services = Services.from_settings()
    try:
        if args.command == "chat":
            return asyncio.run(
                run_chat(services, args.source or list(settings.sources), show_context=args.show_context)
            )
        if args.command == "ingest":
            return asyncio.run(
                run_ingest(services, args.sources, collection=args.collection, concurrency=args.concurrency)
            )
        return asyncio.run(run_similarity(services, args.text, args.example or SIMILARITY_EXAMPLES))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
