from __future__ import annotations

import argparse
import json
import math
import threading
import time
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from app.config import settings
from app.rag.chunking import chunk_document
from app.rag.ingest import load_sources
from app.rag.tokenizer import tokenize
from app.rag.types import Chunk, Index, SourceDocument


UNSEEN_TERM_IDF = 1.0


@dataclass(frozen=True)
class _RawChunk:
    id: str
    source_id: str
    title: str
    url: str
    content: str
    tokens: Tuple[str, ...]


def compute_idf(token_lists: Sequence[Sequence[str]]) -> Dict[str, float]:
    """Smoothed IDF: ``ln((N + 1) / (df + 1)) + 1``.

    ``df`` counts distinct chunks containing the term, not raw occurrences.
    Every weight is >= 1 for terms seen in the corpus.
    """
    n = len(token_lists)
    df: Counter[str] = Counter()
    for tokens in token_lists:
        df.update(set(tokens))

    return {term: math.log((n + 1) / (count + 1)) + 1.0 for term, count in df.items()}


def compute_tfidf(tokens: Sequence[str], idf: Dict[str, float]) -> Tuple[Dict[str, float], float]:
    if not tokens:
        return {}, 0.0

    total = len(tokens)
    vector: Dict[str, float] = {}
    sq = 0.0
    for term, count in Counter(tokens).items():
        w = (count / total) * idf.get(term, UNSEEN_TERM_IDF)
        vector[term] = w
        sq += w * w

    return vector, math.sqrt(sq)


def _raw_chunks(documents: Iterable[SourceDocument]) -> List[_RawChunk]:
    out: List[_RawChunk] = []
    for doc in documents:
        for ordinal, part in enumerate(chunk_document(doc), start=1):
            out.append(
                _RawChunk(
                    id=f"{doc.id}-{ordinal}",
                    source_id=doc.id,
                    title=doc.title,
                    url=doc.url,
                    content=part,
                    tokens=tuple(tokenize(part)),
                )
            )
    return out


def build_index(documents: Iterable[SourceDocument]) -> Index:
    raw = _raw_chunks(documents)

    # pass 1: document frequency over chunks
    idf = compute_idf([rc.tokens for rc in raw])

    # pass 2: per-chunk vectors against the finished table
    chunks: List[Chunk] = []
    for rc in raw:
        vector, norm = compute_tfidf(rc.tokens, idf)
        chunks.append(
            Chunk(
                id=rc.id,
                source_id=rc.source_id,
                title=rc.title,
                url=rc.url,
                content=rc.content,
                term_vector=vector,
                norm=norm,
            )
        )

    return Index(chunks=tuple(chunks), idf=idf)


def index_stats(index: Index) -> Dict[str, int]:
    return {
        "documents": len({c.source_id for c in index.chunks}),
        "chunks": len(index.chunks),
        "terms": len(index.idf),
    }


class IndexCache:
    """Process-wide holder of the current :class:`Index`.

    ``get()`` builds on first use; ``rebuild()`` replaces the index wholesale
    (e.g. after the knowledge base was re-ingested). Builds run under a lock,
    so readers only ever see a complete index.
    """

    def __init__(
        self,
        loader: Callable[[], List[SourceDocument]],
        *,
        logger=None,
    ):
        self.loader = loader
        self.log = logger
        self._lock = threading.Lock()
        self._index: Optional[Index] = None

    def _build(self) -> Index:
        t0 = time.perf_counter()
        index = build_index(self.loader())
        if self.log:
            stats = index_stats(index)
            self.log.info(
                "INDEX built | documents=%s | chunks=%s | terms=%s | build_ms=%s",
                stats["documents"], stats["chunks"], stats["terms"],
                int((time.perf_counter() - t0) * 1000),
            )
        return index

    def get(self) -> Index:
        index = self._index
        if index is not None:
            return index

        with self._lock:
            if self._index is None:
                self._index = self._build()
            return self._index

    def rebuild(self) -> Index:
        with self._lock:
            self._index = self._build()
            return self._index

    def clear(self) -> None:
        with self._lock:
            self._index = None

    @property
    def is_built(self) -> bool:
        return self._index is not None


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Build the TF-IDF index and print its stats")
    parser.add_argument("--sources", type=str, default=settings.SOURCES_PATH, help="Path to sources.json")
    args = parser.parse_args(argv)

    sources_path = Path(args.sources)
    t0 = time.perf_counter()
    documents = load_sources(sources_path)
    index = build_index(documents)
    dt = time.perf_counter() - t0

    stats = {
        **index_stats(index),
        "source_records": len(documents),
        "build_time_sec": round(dt, 3),
        "sources_path": str(sources_path),
    }

    print("OK")
    print(json.dumps(stats, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
