from __future__ import annotations

import re
from typing import List

from app.rag.types import SourceDocument


_PARAGRAPH_BREAK = re.compile(r"\n{2,}")


def split_paragraphs(text: str) -> List[str]:
    if not text:
        return []

    parts = [p.strip() for p in _PARAGRAPH_BREAK.split(text)]
    parts = [p for p in parts if p]

    # a document without blank lines still gets indexed
    if not parts and text.strip():
        return [text.strip()]
    return parts


def chunk_document(document: SourceDocument) -> List[str]:
    return split_paragraphs(document.content)
