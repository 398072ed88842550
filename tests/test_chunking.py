from __future__ import annotations

from app.rag.chunking import chunk_document, split_paragraphs
from app.rag.types import SourceDocument


def _doc(content: str) -> SourceDocument:
    return SourceDocument(id="a", title="A", url="https://example.com/a", content=content)


def test_splits_on_blank_lines():
    doc = _doc("First paragraph.\n\nSecond paragraph.\n\n\n\nThird.")
    assert chunk_document(doc) == ["First paragraph.", "Second paragraph.", "Third."]


def test_single_newline_does_not_split():
    assert split_paragraphs("line one\nline two") == ["line one\nline two"]


def test_trims_and_drops_empty_paragraphs():
    assert split_paragraphs("\n\n  alpha  \n\n \n\n beta \n\n") == ["alpha", "beta"]


def test_document_without_blank_lines_is_one_chunk():
    assert split_paragraphs("   whole document   ") == ["whole document"]


def test_empty_content_gives_no_chunks():
    assert chunk_document(_doc("")) == []
    assert chunk_document(_doc(" \n\n \n")) == []
