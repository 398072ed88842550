from __future__ import annotations

from typing import List, Dict

from app.config import settings
from app.rag.citations import citation_token
from app.rag.types import RetrievedChunk
from app.schemas import ChatRequest

SYSTEM_RULES = " ".join([
    "You are uzbektourist.ai, a minimal travel assistant for Uzbekistan.",
    "Focus: Tashkent, Samarkand, Bukhara, Khiva, Fergana Valley.",
    "Be concise and practical. If unsure, say so and suggest checking official sources.",
    "You may use markdown for emphasis, lists, and links. Use tables only if they are short.",
    "Do not invent prices or schedules. If needed, give rough ranges and label them as estimates.",
    "Always respond in English.",
    'End every answer with: "Sources: ..." using [S1], [S2] if sources were used, or "Sources: none" if not.',
])


def format_sources(hits: List[RetrievedChunk]) -> str:
    if not hits:
        return ""

    blocks = [
        f"[{citation_token(i)}] {h.title} ({h.url})\n{h.content}"
        for i, h in enumerate(hits, start=1)
    ]
    return "\n\n".join([
        "Context sources:",
        "\n\n".join(blocks),
        "Use [S#] citations tied to the sources above.",
    ])


def format_internal_notes(hits: List[RetrievedChunk]) -> str:
    if not hits:
        return ""

    blocks = [f"Note {i}:\n{h.content}" for i, h in enumerate(hits, start=1)]
    return "\n\n".join(["Background notes (internal, do not cite):", "\n\n".join(blocks)])


def itinerary_prompt(req: ChatRequest) -> str:
    city = req.city or ""
    days = req.days or 3
    style = req.style or "balanced"
    budget = req.budget or "standard"
    interests = (req.interests or "").strip() or "(none specified)"

    return " ".join([
        f"Create a {days}-day itinerary for {city}.",
        f"Pace: {style}. Budget: {budget}.",
        f"Interests/constraints: {interests}.",
        "Return ONLY a JSON object (a ```json fenced block is fine) in exactly this shape:",
        '{"title": "string", "days": [{"day": 1, "theme": "string", "morning": ["string"], '
        '"afternoon": ["string"], "evening": ["string"]}], "transportNotes": ["string"], '
        '"tips": [{"label": "string", "details": ["string"]}], "sources": ["S1"]}.',
        "Each of morning/afternoon/evening should have 2-4 concise items.",
        "Do not invent exact prices or hours. If needed, give rough ranges and label as estimates.",
        'In "sources" list the [S#] ids you used without brackets, or ["none"].',
    ])


def retrieval_query(req: ChatRequest) -> str:
    if req.mode == "chat":
        msgs = req.messages or []
        return msgs[-1].content if msgs else ""
    return f"{req.city or ''} {req.interests or ''} itinerary"


def build(
    req: ChatRequest,
    web_hits: List[RetrievedChunk],
    kb_hits: List[RetrievedChunk],
) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = [{"role": "system", "content": SYSTEM_RULES}]

    sources_msg = format_sources(web_hits)
    if sources_msg:
        messages.append({"role": "system", "content": sources_msg})

    notes_msg = format_internal_notes(kb_hits)
    if notes_msg:
        messages.append({"role": "system", "content": notes_msg})

    if req.mode == "chat":
        history = [m for m in (req.messages or []) if m.role in ("user", "assistant")]
        history = history[-settings.MAX_HISTORY:] if settings.MAX_HISTORY > 0 else []
        messages.extend({"role": m.role, "content": m.content} for m in history)
    else:
        messages.append({"role": "user", "content": itinerary_prompt(req)})

    return messages
