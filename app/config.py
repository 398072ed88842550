from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


def _opt(name: str) -> str | None:
    v = os.getenv(name)
    return v if v else None


class Settings:
    # --- Model endpoint (OpenAI-compatible) ---
    AI_BASE_URL: str | None = _opt("AI_BASE_URL")
    AI_API_KEY: str | None = _opt("AI_API_KEY")
    AI_MODEL: str | None = _opt("AI_MODEL")
    AI_HTTP_REFERER: str | None = _opt("AI_HTTP_REFERER")
    AI_APP_TITLE: str | None = _opt("AI_APP_TITLE")

    # --- Retrieval ---
    RELEVANCE_THRESHOLD: float = float(os.getenv("RELEVANCE_THRESHOLD", "0.05"))
    WEB_SOURCES_LIMIT: int = int(os.getenv("WEB_SOURCES_LIMIT", "4"))
    KB_NOTES_LIMIT: int = int(os.getenv("KB_NOTES_LIMIT", "3"))

    # --- Knowledge base ---
    SOURCES_PATH: str = os.getenv("SOURCES_PATH", "data/sources.json")
    KB_PATH: str = os.getenv("KB_PATH", "backend/kb")
    KB_BASE_URL: str = os.getenv("KB_BASE_URL", "https://uzbektourist.uz/kb")

    # --- LLM generation ---
    LLM_TIMEOUT_S: float = float(os.getenv("LLM_TIMEOUT_S", "60"))
    LLM_RETRIES: int = int(os.getenv("LLM_RETRIES", "1"))
    MAX_TOKENS_CHAT: int = int(os.getenv("MAX_TOKENS_CHAT", "600"))
    MAX_TOKENS_ITINERARY: int = int(os.getenv("MAX_TOKENS_ITINERARY", "1200"))
    TEMPERATURE_CHAT: float = float(os.getenv("TEMPERATURE_CHAT", "0.4"))
    TEMPERATURE_ITINERARY: float = float(os.getenv("TEMPERATURE_ITINERARY", "0.6"))

    # --- Chat ---
    MAX_HISTORY: int = int(os.getenv("MAX_HISTORY", "10"))
    CACHE_TTL_S: float = float(os.getenv("CACHE_TTL_S", "600"))
    CACHE_VERSION: int = int(os.getenv("CACHE_VERSION", "2"))

    # --- Feedback ---
    FEEDBACK_PATH: str | None = _opt("FEEDBACK_PATH")

    def model_configured(self) -> bool:
        return bool(self.AI_BASE_URL and self.AI_API_KEY and self.AI_MODEL)


settings = Settings()
