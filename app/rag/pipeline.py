from __future__ import annotations

import uuid

from app.config import settings
from app.rag.citations import citation_tokens, ensure_sources_line, source_items
from app.rag.generator import Generator
from app.rag.itinerary import extract_structured, render_markdown
from app.rag.prompt import build as build_prompt, retrieval_query
from app.rag.response_cache import ResponseCache, cache_key
from app.rag.retriever import Retriever
from app.schemas import ChatRequest, ChatResponse


def answer(
    req: ChatRequest,
    *,
    retriever: Retriever,
    generator: Generator,
    cache: ResponseCache | None = None,
    logger=None,
) -> ChatResponse:
    """Retrieve, prompt, generate, and post-process one chat request.

    Web sources are citable as ``[S#]``; KB notes only go into the prompt as
    background. Itinerary answers that parse into a valid itinerary are
    re-rendered as markdown, everything else is returned as the model wrote
    it. Generation errors propagate to the caller.
    """
    request_id = str(uuid.uuid4())
    query = retrieval_query(req)

    web_hits, _ = retriever.retrieve(query, limit=settings.WEB_SOURCES_LIMIT, kind="web")
    kb_hits, _ = retriever.retrieve(query, limit=settings.KB_NOTES_LIMIT, kind="kb")
    tokens = citation_tokens(web_hits)

    key = cache_key(req, [h.id for h in web_hits + kb_hits])
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            if logger:
                logger.info("CACHE hit | request_id=%s | mode=%s", request_id, req.mode)
            cached.cached = True
            cached.request_id = request_id
            return cached

    messages = build_prompt(req, web_hits, kb_hits)

    if req.mode == "itinerary":
        temperature, max_tokens = settings.TEMPERATURE_ITINERARY, settings.MAX_TOKENS_ITINERARY
    else:
        temperature, max_tokens = settings.TEMPERATURE_CHAT, settings.MAX_TOKENS_CHAT

    gen_res = generator.generate(messages, temperature=temperature, max_tokens=max_tokens)

    text = gen_res.text
    itinerary = None
    if req.mode == "itinerary":
        itinerary = extract_structured(text, tokens)
        if itinerary is not None:
            text = render_markdown(itinerary)
        elif logger:
            logger.info("ITINERARY unstructured | request_id=%s | falling back to raw text", request_id)

    res = ChatResponse(
        text=ensure_sources_line(text, web_hits),
        sources=source_items(web_hits),
        itinerary=itinerary,
        request_id=request_id,
    )

    if cache is not None:
        cache.set(key, res)
    return res
