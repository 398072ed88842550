from __future__ import annotations

import json
import math
import re
from typing import Any, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.utils.logging import setup_logging

log = setup_logging()

DEFAULT_TITLE = "Itinerary"
DEFAULT_TIP_LABEL = "Tip"
NO_SOURCES = "none"


# -----------------------------
# Normalized shape
# -----------------------------

class ItineraryDay(BaseModel):
    day: int = Field(ge=1)
    theme: Optional[str] = None
    morning: List[str] = Field(default_factory=list)
    afternoon: List[str] = Field(default_factory=list)
    evening: List[str] = Field(default_factory=list)


class ItineraryTip(BaseModel):
    label: str = Field(min_length=1)
    details: List[str] = Field(default_factory=list)


class Itinerary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    days: List[ItineraryDay] = Field(min_length=1)
    transport_notes: List[str] = Field(default_factory=list, alias="transportNotes")
    tips: List[ItineraryTip] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# -----------------------------
# Extraction
# -----------------------------

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_SMART_QUOTES = {
    "\N{LEFT DOUBLE QUOTATION MARK}": '"',
    "\N{RIGHT DOUBLE QUOTATION MARK}": '"',
    "\N{LEFT SINGLE QUOTATION MARK}": "'",
    "\N{RIGHT SINGLE QUOTATION MARK}": "'",
}


def _repair(payload: str) -> str:
    for smart, plain in _SMART_QUOTES.items():
        payload = payload.replace(smart, plain)
    return _TRAILING_COMMA.sub(r"\1", payload)


def _loads(payload: str) -> Any:
    try:
        return json.loads(payload)
    except (ValueError, RecursionError):
        return None


def extract_json(raw_text: str) -> Any:
    """Pull the JSON object out of model output, or ``None``.

    Looks inside the first fenced block when there is one, then takes the
    span from the first ``{`` to the last ``}``. A failed parse gets one
    repair attempt (smart quotes, trailing commas). ``None`` here means
    "render the text as is", not an error.
    """
    if not raw_text or not isinstance(raw_text, str):
        return None

    trimmed = raw_text.strip()
    fenced = _FENCE.search(trimmed)
    candidate = fenced.group(1) if fenced else trimmed

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end < start:
        return None
    payload = candidate[start:end + 1]

    parsed = _loads(payload)
    if parsed is not None:
        return parsed
    return _loads(_repair(payload))


# -----------------------------
# Coercion
# -----------------------------

def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def coerce_string_list(value: Any) -> List[str]:
    """Scalar -> one-element list, falsy -> [], sequences stringified per item."""
    if not value:
        return []

    items = value if isinstance(value, (list, tuple)) else [value]
    out: List[str] = []
    for item in items:
        if item is None:
            continue
        s = _stringify(item).strip()
        if s:
            out.append(s)
    return out


def _optional_text(value: Any) -> Optional[str]:
    if not value:
        return None
    s = _stringify(value).strip()
    return s or None


def _day_number(value: Any, position: int) -> int:
    if value is None or isinstance(value, bool):
        return position

    if isinstance(value, int):
        return value if value >= 1 else position

    if isinstance(value, float):
        n = value
    elif isinstance(value, str):
        try:
            n = float(value.strip())
        except ValueError:
            return position
    else:
        return position

    if not math.isfinite(n) or n < 1:
        return position
    return int(n)


def _first(obj: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        v = obj.get(k)
        if v is not None:
            return v
    return None


def _coerce_day(entry: Mapping[str, Any], position: int) -> ItineraryDay:
    return ItineraryDay(
        day=_day_number(entry.get("day"), position),
        theme=_optional_text(entry.get("theme")),
        morning=coerce_string_list(entry.get("morning")),
        afternoon=coerce_string_list(entry.get("afternoon")),
        evening=coerce_string_list(entry.get("evening")),
    )


def _coerce_tip(tip: Any) -> Optional[ItineraryTip]:
    if isinstance(tip, Mapping):
        return ItineraryTip(
            label=_optional_text(tip.get("label")) or DEFAULT_TIP_LABEL,
            details=coerce_string_list(tip.get("details")),
        )
    details = coerce_string_list(tip)
    if not details:
        return None
    return ItineraryTip(label=DEFAULT_TIP_LABEL, details=details)


def normalize(value: Any, fallback_sources: Sequence[str]) -> Itinerary | None:
    """Coerce a parsed JSON value into an :class:`Itinerary`.

    Returns ``None`` when ``value`` is not an object, has no ``days`` list,
    or the list is empty. Empty ``sources`` are replaced by
    ``fallback_sources`` (the citation tokens of the chunks actually
    retrieved for the request).
    """
    if not isinstance(value, Mapping):
        return None

    days_raw = value.get("days")
    if not isinstance(days_raw, (list, tuple)):
        return None

    # non-object entries still count as a day at their position
    days = [
        _coerce_day(entry if isinstance(entry, Mapping) else {}, position)
        for position, entry in enumerate(days_raw, start=1)
    ]
    if not days:
        return None

    tips_raw = value.get("tips")
    tips: List[ItineraryTip] = []
    if isinstance(tips_raw, (list, tuple)):
        for tip in tips_raw:
            t = _coerce_tip(tip)
            if t is not None:
                tips.append(t)

    sources = coerce_string_list(value.get("sources"))
    if not sources:
        sources = [str(s) for s in fallback_sources]

    return Itinerary(
        title=_optional_text(value.get("title")) or DEFAULT_TITLE,
        days=days,
        transport_notes=coerce_string_list(_first(value, "transportNotes", "transport_notes")),
        tips=tips,
        sources=sources,
    )


def extract_structured(raw_text: str, fallback_sources: Sequence[str] = ()) -> Itinerary | None:
    parsed = extract_json(raw_text)
    if parsed is None:
        return None

    # coercion runs even when the repaired parse succeeded
    try:
        return normalize(parsed, fallback_sources)
    except (ValidationError, RecursionError) as e:
        log.warning("ITINERARY rejected | err=%s", f"{type(e).__name__}: {e}")
        return None


# -----------------------------
# Markdown
# -----------------------------

def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _bullets(items: List[str]) -> str:
    if not items:
        return "-"
    return "<br>".join(f"• {_cell(i)}" for i in items)


def sources_line(sources: Sequence[str]) -> str:
    if not sources or NO_SOURCES in sources:
        return "Sources: none"
    return "Sources: " + " ".join(f"[{s}]" for s in sources)


def render_markdown(itinerary: Itinerary) -> str:
    blocks: List[str] = [f"### {itinerary.title}"]

    rows = ["| Day | Morning | Afternoon | Evening |", "| --- | --- | --- | --- |"]
    for d in itinerary.days:
        label = f"Day {d.day}: {_cell(d.theme)}" if d.theme else f"Day {d.day}"
        rows.append(f"| {label} | {_bullets(d.morning)} | {_bullets(d.afternoon)} | {_bullets(d.evening)} |")
    blocks.append("\n".join(rows))

    if itinerary.transport_notes:
        blocks.append("\n".join(["**Transport notes**"] + [f"- {n}" for n in itinerary.transport_notes]))

    if itinerary.tips:
        tip_rows = ["**Practical tips**", "| Tip | Details |", "| --- | --- |"]
        for tip in itinerary.tips:
            tip_rows.append(f"| {_cell(tip.label)} | {_bullets(tip.details)} |")
        blocks.append("\n".join(tip_rows))

    blocks.append(sources_line(itinerary.sources))
    return "\n\n".join(blocks)
