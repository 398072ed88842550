from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

from app.config import settings
from app.rag.index import IndexCache, compute_tfidf
from app.rag.ingest import load_sources
from app.rag.tokenizer import tokenize
from app.rag.types import Chunk, Index, RetrievedChunk, SourceKind


def _snippet(text: str, n: int = 360) -> str:
    t = " ".join((text or "").split())
    return t if len(t) <= n else t[:n].rstrip() + "…"


def cosine_similarity(query_vector: Dict[str, float], query_norm: float, chunk: Chunk) -> float:
    if query_norm == 0 or chunk.norm == 0:
        return 0.0

    dot = 0.0
    for term, w in query_vector.items():
        cw = chunk.term_vector.get(term)
        if cw:
            dot += w * cw
    # rounding can push identical vectors a hair above 1
    return min(dot / (query_norm * chunk.norm), 1.0)


def _matches_kind(chunk: Chunk, kind: SourceKind) -> bool:
    if kind == "web":
        return not chunk.is_kb
    if kind == "kb":
        return chunk.is_kb
    return True


def retrieve(
    query: str,
    limit: int,
    index: Index,
    *,
    min_score: float | None = None,
    kind: SourceKind = "all",
) -> List[RetrievedChunk]:
    """Rank ``index`` chunks against ``query`` by TF-IDF cosine similarity.

    Chunks scoring at or below ``min_score`` are dropped; ties keep index
    order. ``kind`` narrows the candidates to web sources or KB notes. The
    query is weighted with the index's own IDF table, never a fresh one.
    """
    if limit <= 0 or not index.chunks:
        return []

    tokens = tokenize(query or "")
    if not tokens:
        return []

    threshold = float(settings.RELEVANCE_THRESHOLD if min_score is None else min_score)
    threshold = max(threshold, 0.0)

    q_vec, q_norm = compute_tfidf(tokens, index.idf)

    scored: List[Tuple[Chunk, float]] = []
    for chunk in index.chunks:
        if not _matches_kind(chunk, kind):
            continue
        score = cosine_similarity(q_vec, q_norm, chunk)
        if score > threshold:
            scored.append((chunk, score))

    # sorted() is stable: equal scores stay in index order
    scored = sorted(scored, key=lambda x: x[1], reverse=True)[:limit]

    return [
        RetrievedChunk(
            id=c.id,
            source_id=c.source_id,
            title=c.title,
            url=c.url,
            content=c.content,
            score=s,
        )
        for c, s in scored
    ]


@dataclass
class RetrieveMetrics:
    total_latency_ms: int
    candidates: int
    returned: int
    top_score: float | None


class Retriever:
    def __init__(
        self,
        *,
        cache: IndexCache,
        min_score: float | None = None,
        logger=None,
    ):
        self.cache = cache
        self.min_score = float(min_score) if min_score is not None else float(settings.RELEVANCE_THRESHOLD)
        self.log = logger

    def retrieve(
        self,
        query: str,
        *,
        limit: int,
        kind: SourceKind = "all",
    ) -> tuple[list[RetrievedChunk], RetrieveMetrics]:
        t0 = time.perf_counter()

        index = self.cache.get()
        hits = retrieve(query, limit, index, min_score=self.min_score, kind=kind)

        metrics = RetrieveMetrics(
            total_latency_ms=int((time.perf_counter() - t0) * 1000),
            candidates=len(index.chunks),
            returned=len(hits),
            top_score=hits[0].score if hits else None,
        )

        if self.log:
            self.log.info(
                "RETRIEVE | kind=%s | limit=%s | candidates=%s | returned=%s | top_score=%s | latency_ms=%s",
                kind, limit, metrics.candidates, metrics.returned,
                (f"{metrics.top_score:.4f}" if metrics.top_score is not None else None),
                metrics.total_latency_ms,
            )
        return hits, metrics


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Retriever: query -> ranked chunks (TF-IDF)")
    parser.add_argument("query", type=str, help="Query string")
    parser.add_argument("--limit", type=int, default=settings.WEB_SOURCES_LIMIT, help="Max chunks to return")
    parser.add_argument("--kind", choices=["all", "web", "kb"], default="all", help="Restrict to web sources or KB notes")
    parser.add_argument("--min_score", type=float, default=None, help="Override RELEVANCE_THRESHOLD from env")
    parser.add_argument("--sources", type=str, default=settings.SOURCES_PATH, help="Path to sources.json")
    args = parser.parse_args(argv)

    sources_path = Path(args.sources)
    cache = IndexCache(lambda: load_sources(sources_path))
    retriever = Retriever(cache=cache, min_score=args.min_score)

    hits, m = retriever.retrieve(args.query, limit=args.limit, kind=args.kind)

    q = (args.query or "").strip()
    print(f"\nQUERY: {q}")
    print(f"LIMIT: {args.limit}   KIND: {args.kind}")
    print(f"MIN_SCORE: {retriever.min_score}\n")

    if not hits:
        print("NOT FOUND: no relevant chunks above threshold.\n")
    else:
        for rank, h in enumerate(hits, start=1):
            print(f"[S{rank}] score={h.score:.4f}")
            print(f"    id: {h.id}")
            print(f"    title: {h.title}")
            print(f"    url: {h.url}")
            print(f"    snippet: {_snippet(h.content)}")
            print()

    print(
        "METRICS:"
        f" total_latency_ms={m.total_latency_ms}"
        f" candidates={m.candidates}"
        f" returned={m.returned}"
        f" top_score={(f'{m.top_score:.4f}' if m.top_score is not None else 'None')}"
    )
    print("\nOK\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
