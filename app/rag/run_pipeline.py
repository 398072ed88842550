# app/rag/run_pipeline.py
from __future__ import annotations

import argparse
import json
from pathlib import Path

from app.config import settings
from app.rag.generator import build_generator
from app.rag.index import IndexCache
from app.rag.ingest import load_sources
from app.rag.pipeline import answer
from app.rag.retriever import Retriever
from app.schemas import ChatRequest, Message
from app.utils.logging import setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the chat pipeline once")
    parser.add_argument("question", type=str, nargs="?", default="", help="Chat question")
    parser.add_argument("--itinerary", action="store_true", help="Ask for an itinerary instead of a chat answer")
    parser.add_argument("--city", type=str, default="Samarkand")
    parser.add_argument("--days", type=int, default=3)
    parser.add_argument("--interests", type=str, default="")
    args = parser.parse_args()

    log = setup_logging()

    if args.itinerary:
        req = ChatRequest(mode="itinerary", city=args.city, days=args.days, interests=args.interests)
    else:
        req = ChatRequest(mode="chat", messages=[Message(role="user", content=args.question)])

    cache = IndexCache(lambda: load_sources(Path(settings.SOURCES_PATH)), logger=log)
    res = answer(req, retriever=Retriever(cache=cache, logger=log), generator=build_generator(logger=log), logger=log)

    print(json.dumps(res.model_dump(mode="json", by_alias=True, exclude_none=True), ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
