from __future__ import annotations

import time
import uuid
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from app.config import settings
from app.feedback import FeedbackStore, InvalidFeedback
from app.schemas import ChatRequest, ChatResponse, ErrorResponse, FeedbackRequest, FeedbackResponse
from app.utils.logging import setup_logging
from app.rag.generator import Generator, EmptyCompletionError, MISSING_MODEL_CONFIG, build_generator
from app.rag.index import IndexCache, index_stats
from app.rag.ingest import load_sources
from app.rag.pipeline import answer as rag_answer
from app.rag.response_cache import ResponseCache
from app.rag.retriever import Retriever


log = setup_logging()
app = FastAPI(title="uzbektourist.ai", version="1.0")

index_cache = IndexCache(lambda: load_sources(Path(settings.SOURCES_PATH)), logger=log)
retriever = Retriever(cache=index_cache, logger=log)
response_cache = ResponseCache()
feedback_store = FeedbackStore(Path(settings.FEEDBACK_PATH) if settings.FEEDBACK_PATH else None, logger=log)

_generator: Optional[Generator] = None


def get_generator() -> Generator:
    global _generator
    if _generator is None:
        _generator = build_generator(logger=log)
    return _generator


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


ERROR_RESPONSES = {code: {"model": ErrorResponse} for code in (400, 422, 500, 502)}


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_, __: RequestValidationError):
    return _error(422, "Invalid request.")


@app.post("/api/chat", response_model=ChatResponse, responses=ERROR_RESPONSES)
def chat(req: ChatRequest):
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()

    if not settings.model_configured():
        return _error(500, MISSING_MODEL_CONFIG)

    if req.mode == "chat" and not req.messages:
        return _error(400, "Chat messages are required.")

    log.info("REQ /api/chat | request_id=%s | mode=%s", request_id, req.mode)

    try:
        res = rag_answer(
            req,
            retriever=retriever,
            generator=get_generator(),
            cache=response_cache,
            logger=log,
        )
    except EmptyCompletionError as e:
        log.info("RES /api/chat | request_id=%s | status=empty", request_id)
        return _error(502, str(e))
    except Exception as e:
        latency_ms = int((time.perf_counter() - t0) * 1000)
        log.exception(
            "RES /api/chat | request_id=%s | status=error | latency_ms=%s | err=%s",
            request_id,
            latency_ms,
            f"{type(e).__name__}: {e}",
        )
        return _error(502, "Upstream model error")

    latency_ms = int((time.perf_counter() - t0) * 1000)
    log.info(
        "RES /api/chat | request_id=%s | status=ok | latency_ms=%s | sources=%s | structured=%s | cached=%s",
        request_id, latency_ms, len(res.sources), res.itinerary is not None, res.cached,
    )
    return JSONResponse(status_code=200, content=res.model_dump(mode="json", by_alias=True, exclude_none=True))


@app.post("/api/feedback", response_model=FeedbackResponse, responses=ERROR_RESPONSES)
def feedback(req: FeedbackRequest, request: Request):
    try:
        feedback_store.add(req, user_agent=request.headers.get("user-agent"))
    except InvalidFeedback as e:
        return _error(400, str(e))
    except OSError as e:
        log.exception("FEEDBACK store failed | err=%s", f"{type(e).__name__}: {e}")
        return _error(500, "Failed to store feedback.")

    return FeedbackResponse(ok=True, storage=feedback_store.storage)


@app.post("/api/index/refresh")
def refresh_index():
    index = index_cache.rebuild()
    response_cache.clear()
    return {"ok": True, **index_stats(index)}


@app.get("/")
def root():
    return {"ok": True}
