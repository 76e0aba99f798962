"""
Command line interface for the Danish legal RAG pipeline.

Usage:
    python -m execution.lovrag.cli index [--batch-size 10]
    python -m execution.lovrag.cli search "opsigelsesvarsel" [--limit 10]
    python -m execution.lovrag.cli ask "Hvad er opsigelsesvarslet?" [--domain arbejdsret]
    python -m execution.lovrag.cli status

Without POSTGRES_URL the stores live in memory; pass --statutes with a
JSON file of statute records to load a corpus for the run.
"""

import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .api_models import SearchHit, SessionCreate, TurnResponse
from .config import RagConfig
from .errors import LovRagError
from .models import StatuteRecord, new_id
from .services import ServiceContainer

logger = logging.getLogger(__name__)


def load_statutes(container: ServiceContainer, path: Path) -> int:
    """Insert statute records from a JSON list into the corpus store."""
    with open(path, encoding="utf-8") as f:
        items = json.load(f)

    store = container.get_corpus_store()
    for item in items:
        store.put_statute(StatuteRecord(
            id=item.get("id") or new_id(),
            title=item["title"],
            content=item["content"],
            source_id=item.get("source_id") or item["title"],
            law_number=item.get("law_number"),
            chapter=item.get("chapter"),
            section=item.get("section"),
            paragraph=item.get("paragraph"),
            domain_id=item.get("domain_id"),
            source_url=item.get("source_url"),
        ))
    logger.info(f"Loaded {len(items)} statutes from {path}")
    return len(items)


def cmd_index(container: ServiceContainer, args) -> int:
    report = container.get_indexer().index_missing(batch_size=args.batch_size)
    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.failed == 0 else 1


async def _search(container: ServiceContainer, args) -> list[SearchHit]:
    candidates = await container.get_retriever().retrieve(
        args.query,
        domain_filter=args.domain or None,
        top_k=args.limit,
        min_score=args.min_score,
    )
    return [
        SearchHit(
            statute_id=c.statute.id,
            title=c.statute.title,
            law_number=c.statute.law_number,
            locator=c.statute.locator,
            similarity=c.score,
            content=c.statute.content,
        )
        for c in candidates
    ]


def cmd_search(container: ServiceContainer, args) -> int:
    hits = asyncio.run(_search(container, args))
    print(f"\nSearching for: {args.query}")
    print("-" * 50)
    for i, hit in enumerate(hits, 1):
        print(f"\n{i}. {hit.title} ({hit.law_number or 'N/A'}) similarity: {hit.similarity:.4f}")
        if hit.locator:
            print(f"   {hit.locator}")
        print(f"   Preview: {hit.content[:200]}...")
    if not hits:
        print("No matching statutes.")
    return 0


async def _ask(container: ServiceContainer, args) -> TurnResponse:
    request = SessionCreate(title=args.query[:50], domain_filter=args.domain or [])
    session = container.get_chat_store().create_session(
        title=request.title, domain_filter=request.domain_filter,
    )
    _, answer = await container.get_orchestrator().process_turn(session.id, args.query)
    return TurnResponse.from_message(answer)


def cmd_ask(container: ServiceContainer, args) -> int:
    response = asyncio.run(_ask(container, args))
    print(response.answer_text)
    if response.citations:
        print("\nKilder:")
        for c in response.citations:
            print(f"  - {c.statute_id} ({c.relevance_score:.3f}): {c.snippet}")
    return 0


def cmd_status(container: ServiceContainer, args) -> int:
    print(json.dumps(container.status(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Danish legal RAG pipeline")
    parser.add_argument("--statutes", type=Path, help="JSON file of statute records to load first")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Embed statutes that lack an embedding")
    index.add_argument("--batch-size", type=int, default=10, help="Statutes per batch (default: 10)")
    index.set_defaults(func=cmd_index)

    search = subparsers.add_parser("search", help="Semantic search over the corpus")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=10, help="Maximum results (default: 10)")
    search.add_argument("--min-score", type=float, default=0.0, help="Similarity floor (default: 0.0)")
    search.add_argument("--domain", action="append", help="Restrict to a legal domain (repeatable)")
    search.set_defaults(func=cmd_search, needs_index=True)

    ask = subparsers.add_parser("ask", help="Ask a question in a new chat session")
    ask.add_argument("query")
    ask.add_argument("--domain", action="append", help="Restrict to a legal domain (repeatable)")
    ask.set_defaults(func=cmd_ask, needs_index=True)

    status = subparsers.add_parser("status", help="Show pipeline configuration")
    status.set_defaults(func=cmd_status)
    return parser


def main(argv: Optional[list[str]] = None, container: Optional[ServiceContainer] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if container is None:
        try:
            container = ServiceContainer(RagConfig.from_env())
        except ValueError as e:
            logger.error(f"Invalid configuration: {e}")
            return 2

    try:
        if args.statutes:
            load_statutes(container, args.statutes)
            if not container.uses_database and getattr(args, "needs_index", False):
                # In-memory corpus only lives for this run
                container.get_indexer().index_missing()
        return args.func(container, args)
    except LovRagError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        container.close()


if __name__ == "__main__":
    sys.exit(main())
