from __future__ import annotations

import argparse
import asyncio
import sys

from zoerag.core.config import get_settings
from zoerag.core.errors import EmbeddingError, ProviderConfigError, RetrievalError
from zoerag.persistence.db import SessionLocal
from zoerag.providers.embeddings.factory import get_embedding_provider
from zoerag.providers.retrieval.factory import get_knowledge_retriever
from zoerag.services.validation import normalize_audience


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Embed a query and run a knowledge search with the configured providers."
    )
    parser.add_argument("--query", required=True, help="Query string")
    parser.add_argument("--tenant", default=None, help="Tenant id (omit for shared knowledge only)")
    parser.add_argument("--audience", action="append", default=None, help="Audience tag; repeatable")
    parser.add_argument("--locale", default=None, help="Short locale such as 'en'")
    parser.add_argument("--top-k", type=int, default=None, help="Override RETRIEVAL_TOP_K")
    parser.add_argument("--min-similarity", type=float, default=None, help="Override RETRIEVAL_MIN_SIMILARITY")
    return parser


def _format_error(exc: Exception) -> tuple[int, str]:
    # Map known failures to stable, actionable messages.
    if isinstance(exc, ProviderConfigError):
        return 2, f"PROVIDER_CONFIG_INVALID: {exc}"
    if isinstance(exc, EmbeddingError):
        return 3, f"EMBEDDING_ERROR: {exc}"
    if isinstance(exc, RetrievalError):
        return 4, f"RETRIEVAL_ERROR: {exc}"
    return 1, f"UNKNOWN_ERROR: {exc}"


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    embedder = get_embedding_provider(settings)
    retriever = get_knowledge_retriever(settings, SessionLocal)
    try:
        embedding = await embedder.embed(args.query)
        matches = await retriever.search(
            embedding,
            audience=normalize_audience(args.audience),
            locale=args.locale,
            tenant_id=args.tenant,
            top_k=args.top_k or settings.retrieval_top_k,
            min_similarity=(
                args.min_similarity if args.min_similarity is not None else settings.retrieval_min_similarity
            ),
        )
    finally:
        close = getattr(embedder, "aclose", None)
        if close is not None:
            await close()

    if not matches:
        print("no matches")
    for match in matches:
        text = " ".join(match.content.split())
        snippet = (text[:120] + "...") if len(text) > 120 else text
        print(f"- similarity={match.similarity:.3f} id={match.id} title={match.title} text=\"{snippet}\"")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    try:
        return asyncio.run(_run(args))
    except Exception as exc:  # noqa: BLE001 - surface actionable errors
        code, message = _format_error(exc)
        print(message, file=sys.stderr)
        return code


if __name__ == "__main__":
    raise SystemExit(main())
