from __future__ import annotations

import re
from typing import List


STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for",
        "from", "has", "he", "in", "is", "it", "its", "of", "on", "or",
        "that", "the", "to", "was", "were", "will", "with", "you", "your",
    }
)

MIN_TOKEN_LEN = 3

_NON_TERM = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase ``text`` and return its index-eligible terms in order.

    Anything outside ``[a-z0-9]`` becomes a separator, so accented letters and
    punctuation split words. Tokens shorter than three characters and
    stopwords are dropped. English only, no stemming.
    """
    if not text:
        return []

    t = _NON_TERM.sub(" ", text.lower())
    return [tok for tok in t.split() if len(tok) >= MIN_TOKEN_LEN and tok not in STOPWORDS]
