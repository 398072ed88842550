from __future__ import annotations

import argparse
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.config import settings
from app.rag.citations import has_sources_line
from app.rag.generator import build_generator
from app.rag.index import IndexCache
from app.rag.ingest import load_sources
from app.rag.pipeline import answer as rag_answer
from app.rag.retriever import Retriever
from app.schemas import ChatRequest, ChatResponse, Message


CASES_PATH_DEFAULT = Path("eval/questions.json")
REPORT_PATH_DEFAULT = Path("eval/report.json")

_DAY_ONE = re.compile(r"\bDay\s+1\b", re.IGNORECASE)


@dataclass
class Case:
    id: str
    mode: str  # "chat" | "itinerary"
    input: str = ""
    city: Optional[str] = None
    days: Optional[int] = None
    style: Optional[str] = None
    budget: Optional[str] = None
    interests: Optional[str] = None
    expect_day_structure: bool = False

    def to_request(self) -> ChatRequest:
        if self.mode == "chat":
            return ChatRequest(mode="chat", messages=[Message(role="user", content=self.input)])
        return ChatRequest(
            mode="itinerary",
            city=self.city,
            days=self.days,
            style=self.style,
            budget=self.budget,
            interests=self.interests,
        )


def load_cases(path: Path) -> List[Case]:
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"{path} must hold a JSON list")

    cases: List[Case] = []
    for i, obj in enumerate(raw, start=1):
        mode = str(obj.get("mode") or "").strip()
        if mode not in {"chat", "itinerary"}:
            raise ValueError(f"Bad mode in {path} case #{i}: {mode}")
        if mode == "chat" and not str(obj.get("input") or "").strip():
            raise ValueError(f"Empty input in {path} case #{i}")

        cases.append(
            Case(
                id=str(obj.get("id") or f"case_{i}"),
                mode=mode,
                input=str(obj.get("input") or ""),
                city=obj.get("city"),
                days=obj.get("days"),
                style=obj.get("style"),
                budget=obj.get("budget"),
                interests=obj.get("interests"),
                expect_day_structure=bool(obj.get("expectDayStructure", False)),
            )
        )
    return cases


def check(case: Case, res: ChatResponse) -> Dict[str, bool]:
    itin = res.itinerary
    has_sources = has_sources_line(res.text) or (itin is not None and bool(itin.sources))
    has_days = bool(_DAY_ONE.search(res.text)) or (itin is not None and bool(itin.days))

    return {
        "sources": has_sources,
        "dayStructure": has_days if case.expect_day_structure else True,
        "structured": (itin is not None) if case.mode == "itinerary" else True,
    }


def _fmt_bool(x: bool) -> str:
    return "OK" if x else "FAIL"


def main() -> int:
    p = argparse.ArgumentParser(description="Chat/itinerary eval runner")
    p.add_argument("--cases", type=str, default=str(CASES_PATH_DEFAULT), help="Path to eval/questions.json")
    p.add_argument("--report", type=str, default=str(REPORT_PATH_DEFAULT), help="Where to write report.json")
    p.add_argument("--print_failures_only", action="store_true", help="Print only failed cases")
    args = p.parse_args()

    cases_path = Path(args.cases)
    if not cases_path.exists():
        raise RuntimeError(f"Missing cases file: {cases_path}")

    cases = load_cases(cases_path)

    cache = IndexCache(lambda: load_sources(Path(settings.SOURCES_PATH)))
    retriever = Retriever(cache=cache)
    generator = build_generator()

    print("\nEVAL RUN")
    print("--------")
    print(f"cases: {len(cases)}\n")

    results: List[Dict[str, Any]] = []

    for c in cases:
        t0 = time.perf_counter()
        res: Optional[ChatResponse] = None
        err: Optional[str] = None

        try:
            res = rag_answer(c.to_request(), retriever=retriever, generator=generator)
        except Exception as e:
            err = f"{type(e).__name__}: {e}"

        duration_ms = int((time.perf_counter() - t0) * 1000)
        checks = check(c, res) if res is not None else {}
        ok = err is None and all(checks.values())

        results.append({
            "id": c.id,
            "mode": c.mode,
            "durationMs": duration_ms,
            "ok": ok,
            "error": err,
            "checks": checks,
            "sample": (res.text[:240] if res is not None else ""),
            "sourcesCount": (len(res.sources) if res is not None else 0),
        })

        if (not args.print_failures_only) or (not ok):
            if err is not None:
                print(f"[{c.id}] {c.mode} | ERROR | {err}")
            else:
                flags = " ".join(f"{k}={_fmt_bool(v)}" for k, v in checks.items())
                print(f"[{c.id}] {c.mode} | {_fmt_bool(ok)} | {flags} | sources={len(res.sources)} | {duration_ms}ms")

    passed = sum(1 for r in results if r["ok"])
    report = {
        "summary": {
            "passed": passed,
            "total": len(results),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "results": results,
    }

    report_path = Path(args.report)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")

    print("\nSUMMARY")
    print("-------")
    print(f"passed: {passed}/{len(results)}")
    print(f"report: {report_path}")
    print("\nOK\n")
    return 0 if passed == len(results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
