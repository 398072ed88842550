from __future__ import annotations

from app.rag.citations import citation_tokens, ensure_sources_line, has_sources_line, source_items
from app.rag.types import RetrievedChunk


def _hit(i: int) -> RetrievedChunk:
    return RetrievedChunk(
        id=f"d{i}-1", source_id=f"d{i}", title=f"Doc {i}", url=f"https://example.com/{i}",
        content="text", score=0.5,
    )


def test_citation_tokens_follow_rank_order():
    assert citation_tokens([_hit(7), _hit(3)]) == ["S1", "S2"]


def test_citation_tokens_none_sentinel():
    assert citation_tokens([]) == ["none"]


def test_source_items():
    items = source_items([_hit(7), _hit(3)])
    assert [(s.id, s.title, s.url) for s in items] == [
        ("S1", "Doc 7", "https://example.com/7"),
        ("S2", "Doc 3", "https://example.com/3"),
    ]


def test_has_sources_line_is_case_insensitive():
    assert has_sources_line("Answer.\n\nsources: none")
    assert has_sources_line("Answer. Sources: [S1]")
    assert not has_sources_line("Answer with resources listed")


def test_ensure_sources_line_appends_when_missing():
    assert ensure_sources_line("Take the train.", [_hit(1), _hit(2)]) == "Take the train.\n\nSources: [S1] [S2]"
    assert ensure_sources_line("Not sure.", []) == "Not sure.\n\nSources: none"


def test_ensure_sources_line_keeps_existing_line():
    text = "Take the train.\n\nSources: [S1]"
    assert ensure_sources_line(text, [_hit(1), _hit(2)]) == text
