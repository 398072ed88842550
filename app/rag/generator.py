from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import OpenAI

from app.config import settings


MISSING_MODEL_CONFIG = "Missing AI_BASE_URL, AI_API_KEY, or AI_MODEL environment variables."


class EmptyCompletionError(RuntimeError):
    pass


# -----------------------------
# Result container
# -----------------------------

@dataclass(frozen=True)
class GenerateResult:
    text: str
    model: str
    latency_ms: int
    usage: Optional[Dict[str, int]]


# -----------------------------
# Generator
# -----------------------------

class Generator:
    def __init__(
        self,
        *,
        client: OpenAI,
        model: str,
        timeout_s: float = 60.0,
        retries: int = 1,
        logger=None,
        sleep_base_s: float = 0.5,
    ):
        self.client = client
        self.model = model
        self.timeout_s = float(timeout_s)
        self.retries = max(0, int(retries))
        self.log = logger
        self.sleep_base_s = float(sleep_base_s)

    def _extract_text(self, resp: Any) -> str:
        choices = getattr(resp, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        return str(content).strip() if content else ""

    def _extract_usage(self, resp: Any) -> Optional[Dict[str, int]]:
        u = getattr(resp, "usage", None)
        if u is None:
            return None

        prompt = int(getattr(u, "prompt_tokens", 0) or 0)
        completion = int(getattr(u, "completion_tokens", 0) or 0)
        total = int(getattr(u, "total_tokens", 0) or (prompt + completion))
        if not total:
            return None
        return {"prompt_tokens": prompt, "completion_tokens": completion, "total_tokens": total}

    def generate(
        self,
        messages: List[Dict[str, Any]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> GenerateResult:
        t0 = time.perf_counter()
        last_err: Optional[Exception] = None

        for attempt in range(1, self.retries + 2):
            try:
                resp = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=float(temperature),
                    max_tokens=int(max_tokens),
                    timeout=self.timeout_s,
                )

                text = self._extract_text(resp)
                if not text:
                    raise EmptyCompletionError("Empty response from model.")

                latency_ms = int((time.perf_counter() - t0) * 1000)
                usage = self._extract_usage(resp)

                if self.log:
                    self.log.info(
                        "GEN ok | model=%s | attempt=%s | latency_ms=%s | usage=%s",
                        self.model, attempt, latency_ms, usage
                    )

                return GenerateResult(
                    text=text,
                    model=self.model,
                    latency_ms=latency_ms,
                    usage=usage,
                )

            except EmptyCompletionError:
                # not retried
                if self.log:
                    self.log.info("GEN empty | model=%s | attempt=%s", self.model, attempt)
                raise

            except Exception as e:
                last_err = e
                if self.log:
                    self.log.info(
                        "GEN error | attempt=%s | err=%s",
                        attempt, f"{type(e).__name__}: {e}"
                    )
                if attempt <= self.retries:
                    time.sleep(self.sleep_base_s * attempt)
                    continue
                break


        raise RuntimeError(f"LLM generation failed after retries: {last_err}") from last_err


def api_base(base_url: str) -> str:
    trimmed = base_url.rstrip("/")
    return trimmed if trimmed.endswith("/v1") else f"{trimmed}/v1"


def build_client() -> OpenAI:
    if not settings.model_configured():
        raise RuntimeError(MISSING_MODEL_CONFIG)

    headers: Dict[str, str] = {}
    if settings.AI_HTTP_REFERER:
        headers["HTTP-Referer"] = settings.AI_HTTP_REFERER
    if settings.AI_APP_TITLE:
        headers["X-Title"] = settings.AI_APP_TITLE

    return OpenAI(
        base_url=api_base(settings.AI_BASE_URL or ""),
        api_key=settings.AI_API_KEY,
        default_headers=headers or None,
    )


def build_generator(client: OpenAI | None = None, logger=None) -> Generator:
    return Generator(
        client=client or build_client(),
        model=settings.AI_MODEL or "",
        timeout_s=settings.LLM_TIMEOUT_S,
        retries=settings.LLM_RETRIES,
        logger=logger,
    )
