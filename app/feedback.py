from __future__ import annotations

import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.schemas import FeedbackRequest


VALID_RATINGS = (1, -1)


class InvalidFeedback(ValueError):
    pass


class FeedbackStore:
    """Answer ratings, kept in memory or appended to a JSONL file."""

    def __init__(self, path: Path | None = None, *, logger=None):
        self.path = path
        self.log = logger
        self._lock = threading.Lock()
        self._memory: List[Dict[str, Any]] = []

    @property
    def storage(self) -> str:
        return "file" if self.path is not None else "memory"

    def add(self, req: FeedbackRequest, *, user_agent: Optional[str] = None) -> Dict[str, Any]:
        if isinstance(req.rating, bool) or req.rating not in VALID_RATINGS:
            raise InvalidFeedback("Invalid feedback.")

        record = {
            "id": str(uuid.uuid4()),
            "created_at": datetime.now(timezone.utc).isoformat(),
            "message_id": req.message_id,
            "rating": req.rating,
            "mode": req.mode,
            "question": req.question,
            "answer": req.answer,
            "sources": [s.model_dump() for s in req.sources],
            "user_agent": user_agent,
        }

        with self._lock:
            if self.path is None:
                self._memory.append(record)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")

        if self.log:
            self.log.info(
                "FEEDBACK stored | id=%s | rating=%s | mode=%s | storage=%s",
                record["id"], record["rating"], record["mode"], self.storage,
            )
        return record

    def records(self) -> List[Dict[str, Any]]:
        with self._lock:
            if self.path is None:
                return list(self._memory)
            if not self.path.exists():
                return []
            rows: List[Dict[str, Any]] = []
            with self.path.open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        rows.append(json.loads(line))
            return rows
