from __future__ import annotations
import re
from typing import List

from app.rag.itinerary import NO_SOURCES, sources_line
from app.rag.types import RetrievedChunk
from app.schemas import SourceItem


_SOURCES_LINE = re.compile(r"\bSources:\s*", re.IGNORECASE)


def citation_token(rank: int) -> str:
    return f"S{rank}"


def citation_tokens(hits: List[RetrievedChunk]) -> List[str]:
    if not hits:
        return [NO_SOURCES]
    return [citation_token(i) for i in range(1, len(hits) + 1)]


def source_items(hits: List[RetrievedChunk]) -> List[SourceItem]:
    return [
        SourceItem(id=citation_token(i), title=h.title, url=h.url)
        for i, h in enumerate(hits, start=1)
    ]


def has_sources_line(text: str) -> bool:
    return bool(_SOURCES_LINE.search(text or ""))


def ensure_sources_line(text: str, hits: List[RetrievedChunk]) -> str:
    if has_sources_line(text):
        return text
    return f"{text}\n\n{sources_line(citation_tokens(hits))}"
