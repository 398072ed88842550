from __future__ import annotations

import math
import threading
import time

import pytest

from app.rag.index import IndexCache, build_index, compute_idf, compute_tfidf, index_stats
from app.rag.types import SourceDocument


def _doc(doc_id: str, content: str, title: str = "T") -> SourceDocument:
    return SourceDocument(id=doc_id, title=title, url=f"https://example.com/{doc_id}", content=content)


def _docs() -> list[SourceDocument]:
    return [
        _doc("a", "Trains run daily between Tashkent and Samarkand.\n\nBukhara taxis are metered."),
        _doc("b", "Samarkand Registan square glows at night."),
    ]


def test_compute_idf_smoothed_formula():
    idf = compute_idf([["samarkand", "train"], ["samarkand", "bukhara"]])
    assert idf["samarkand"] == pytest.approx(math.log(3 / 3) + 1)
    assert idf["train"] == pytest.approx(math.log(3 / 2) + 1)


def test_compute_idf_counts_distinct_chunks_not_occurrences():
    idf = compute_idf([["khiva", "khiva", "khiva"], ["bukhara"]])
    assert idf["khiva"] == pytest.approx(idf["bukhara"])


def test_idf_is_positive_for_every_term():
    index = build_index(_docs() + [_doc("c", "Samarkand Samarkand Samarkand")])
    assert index.idf
    assert all(w > 0 for w in index.idf.values())


def test_compute_tfidf_uses_relative_frequency_and_default_idf():
    vector, norm = compute_tfidf(["alpha", "alpha", "beta"], {"alpha": 2.0})
    assert vector["alpha"] == pytest.approx(2 / 3 * 2.0)
    assert vector["beta"] == pytest.approx(1 / 3 * 1.0)
    assert norm == pytest.approx(math.sqrt(vector["alpha"] ** 2 + vector["beta"] ** 2))


def test_compute_tfidf_empty_tokens():
    assert compute_tfidf([], {"x": 1.0}) == ({}, 0.0)


def test_build_index_chunk_ids_and_back_references():
    index = build_index(_docs())
    assert [c.id for c in index.chunks] == ["a-1", "a-2", "b-1"]
    assert [c.source_id for c in index.chunks] == ["a", "a", "b"]
    assert index.chunks[1].content == "Bukhara taxis are metered."
    assert index.chunks[2].url == "https://example.com/b"


def test_build_index_caches_vector_norm():
    index = build_index(_docs())
    for chunk in index.chunks:
        expected = math.sqrt(sum(w * w for w in chunk.term_vector.values()))
        assert chunk.norm == pytest.approx(expected)
        assert chunk.norm > 0


def test_build_index_zero_documents():
    index = build_index([])
    assert index.chunks == ()
    assert index.idf == {}


def test_stopword_only_chunk_has_zero_norm():
    index = build_index([_doc("s", "The and with your")])
    assert len(index.chunks) == 1
    assert index.chunks[0].term_vector == {}
    assert index.chunks[0].norm == 0.0


def test_index_stats():
    stats = index_stats(build_index(_docs()))
    assert stats["documents"] == 2
    assert stats["chunks"] == 3
    assert stats["terms"] > 0


def test_index_cache_builds_lazily_once():
    calls: list[int] = []

    def loader():
        calls.append(1)
        return _docs()

    cache = IndexCache(loader)
    assert not cache.is_built
    assert calls == []

    first = cache.get()
    second = cache.get()
    assert first is second
    assert len(calls) == 1
    assert cache.is_built


def test_index_cache_rebuild_replaces_index():
    docs = [_docs()[0]]

    cache = IndexCache(lambda: list(docs))
    before = cache.get()
    docs.append(_doc("z", "Khiva walls"))

    after = cache.rebuild()
    assert after is not before
    assert cache.get() is after
    assert {c.source_id for c in after.chunks} == {"a", "z"}


def test_index_cache_clear_forces_rebuild():
    calls: list[int] = []

    def loader():
        calls.append(1)
        return _docs()

    cache = IndexCache(loader)
    cache.get()
    cache.clear()
    assert not cache.is_built
    cache.get()
    assert len(calls) == 2


def test_index_cache_concurrent_first_requests_build_once():
    calls: list[int] = []
    lock = threading.Lock()

    def slow_loader():
        with lock:
            calls.append(1)
        time.sleep(0.05)
        return _docs()

    cache = IndexCache(slow_loader)
    barrier = threading.Barrier(8)
    seen = []

    def worker():
        barrier.wait()
        seen.append(cache.get())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(calls) == 1
    assert len(seen) == 8
    assert all(ix is seen[0] for ix in seen)
    assert len(seen[0].chunks) == 3
