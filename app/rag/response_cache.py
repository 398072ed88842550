from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from app.config import settings
from app.schemas import ChatRequest, ChatResponse


def cache_key(req: ChatRequest, chunk_ids: List[str], *, version: int | None = None) -> str:
    payload = {
        **req.model_dump(mode="json"),
        "sources": chunk_ids,
        "cacheVersion": settings.CACHE_VERSION if version is None else version,
    }
    raw = json.dumps(payload, ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class _Entry:
    expires: float
    response: ChatResponse


class ResponseCache:
    """Thread-safe TTL cache of finished chat responses."""

    def __init__(self, ttl_s: float | None = None, *, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = float(settings.CACHE_TTL_S if ttl_s is None else ttl_s)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, _Entry] = {}

    def get(self, key: str) -> Optional[ChatResponse]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires <= now:
                del self._entries[key]
                return None
            return entry.response.model_copy(deep=True)

    def set(self, key: str, response: ChatResponse) -> None:
        if self.ttl_s <= 0:
            return
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            self._entries[key] = _Entry(expires=now + self.ttl_s, response=response.model_copy(deep=True))

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.expires <= now]
        for k in expired:
            del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
