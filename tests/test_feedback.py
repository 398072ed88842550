from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.feedback import FeedbackStore, InvalidFeedback
from app.schemas import FeedbackRequest, SourceItem


def _req(rating) -> FeedbackRequest:
    return FeedbackRequest(
        messageId="m-1",
        rating=rating,
        mode="chat",
        question="Trains?",
        answer="Yes.",
        sources=[SourceItem(id="S1", title="Rail", url="https://railway.uz")],
    )


def test_memory_store_keeps_records():
    store = FeedbackStore()
    rec = store.add(_req(1), user_agent="pytest")

    assert store.storage == "memory"
    assert rec["rating"] == 1
    assert rec["message_id"] == "m-1"
    assert rec["user_agent"] == "pytest"
    assert rec["sources"] == [{"id": "S1", "title": "Rail", "url": "https://railway.uz"}]
    assert store.records() == [rec]


def test_file_store_appends_jsonl(tmp_path: Path):
    path = tmp_path / "fb" / "feedback.jsonl"
    store = FeedbackStore(path)

    store.add(_req(1))
    store.add(_req(-1))

    assert store.storage == "file"
    lines = path.read_text(encoding="utf-8").strip().split("\n")
    assert [json.loads(line)["rating"] for line in lines] == [1, -1]
    assert [r["rating"] for r in store.records()] == [1, -1]


@pytest.mark.parametrize("rating", [None, 0, 2, -2, True, False])
def test_invalid_rating_rejected(rating):
    store = FeedbackStore()
    with pytest.raises(InvalidFeedback):
        store.add(_req(rating))
    assert store.records() == []
