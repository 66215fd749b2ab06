"""Centralized configuration for thresholds, limits and the AI service.

All env-driven settings live here so there is a single source of truth.
Import from ``quizparse.config`` in pipeline.py, api.py, etc.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, lo: float = 0.0, hi: float = 1.0) -> float:
    try:
        return max(lo, min(hi, float(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Optical recognition
# ---------------------------------------------------------------------------
OCR_CONFIDENCE_THRESHOLD: int = _env_int("OCR_CONFIDENCE_THRESHOLD", default=75, lo=0, hi=100)
OCR_LANGUAGE: str = os.environ.get("OCR_LANGUAGE", "mixed").strip().lower()
OCR_AI_FALLBACK: bool = _env_bool("OCR_AI_FALLBACK", default=True)
OCR_DPI: int = _env_int("OCR_DPI", default=300, lo=72, hi=1200)

# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------
DOCUMENT_MAX_PAGES: int = _env_int("DOCUMENT_MAX_PAGES", default=20, hi=500)
DOCUMENT_TEXT_MIN_CHARS: int = _env_int("DOCUMENT_TEXT_MIN_CHARS", default=100, lo=0, hi=100_000)

# ---------------------------------------------------------------------------
# Cache / telemetry
# ---------------------------------------------------------------------------
CACHE_MAX_ENTRIES: int = _env_int("CACHE_MAX_ENTRIES", default=100, hi=100_000)
CACHE_TTL_SECONDS: int = _env_int("CACHE_TTL_SECONDS", default=24 * 3600, hi=30 * 24 * 3600)
CACHE_SWEEP_SECONDS: int = _env_int("CACHE_SWEEP_SECONDS", default=3600, hi=24 * 3600)
CACHE_FILE: str | None = os.environ.get("CACHE_FILE") or None
TELEMETRY_MAX_EVENTS: int = _env_int("TELEMETRY_MAX_EVENTS", default=1000, hi=1_000_000)

# ---------------------------------------------------------------------------
# Rule extraction / uploads
# ---------------------------------------------------------------------------
RULE_MAX_QUESTIONS: int = _env_int("RULE_MAX_QUESTIONS", default=100, hi=10_000)
MAX_UPLOAD_BYTES: int = _env_int(
    "MAX_UPLOAD_BYTES", default=20 * 1024 * 1024, lo=1, hi=500 * 1024 * 1024,
)
UPLOAD_CHUNK_SIZE: int = 64 * 1024  # 64 KiB streaming chunks
API_HOST: str = os.environ.get("API_HOST", "0.0.0.0").strip()
API_PORT: int = _env_int("API_PORT", default=8000, lo=1, hi=65535)

# ---------------------------------------------------------------------------
# AI service (OpenAI-compatible chat completions)
# ---------------------------------------------------------------------------
AI_PROVIDER: str = os.environ.get("AI_PROVIDER", "openai").strip().lower()
AI_MODEL: str = os.environ.get("AI_MODEL", "gpt-4o-mini").strip()
AI_API_KEY: str = os.environ.get("AI_API_KEY") or os.environ.get("OPENAI_API_KEY", "")
AI_BASE_URL: str | None = os.environ.get("AI_BASE_URL") or None
AI_TEMPERATURE: float = _env_float("AI_TEMPERATURE", default=0.1, lo=0.0, hi=2.0)
AI_MAX_TOKENS: int = _env_int("AI_MAX_TOKENS", default=2000, lo=16, hi=32_000)
AI_ENABLED: bool = _env_bool("AI_ENABLED", default=True)
AI_TIMEOUT: int | None = _env_int("AI_TIMEOUT", default=0, lo=0, hi=600) or None


@dataclass(frozen=True)
class Settings:
    """Snapshot of the runtime configuration handed to a pipeline."""

    ocr_confidence_threshold: int = OCR_CONFIDENCE_THRESHOLD
    ocr_language: str = OCR_LANGUAGE
    ocr_ai_fallback: bool = OCR_AI_FALLBACK
    ocr_dpi: int = OCR_DPI
    document_max_pages: int = DOCUMENT_MAX_PAGES
    document_text_min_chars: int = DOCUMENT_TEXT_MIN_CHARS
    cache_max_entries: int = CACHE_MAX_ENTRIES
    cache_ttl_seconds: int = CACHE_TTL_SECONDS
    cache_sweep_seconds: int = CACHE_SWEEP_SECONDS
    cache_file: str | None = CACHE_FILE
    telemetry_max_events: int = TELEMETRY_MAX_EVENTS
    rule_max_questions: int = RULE_MAX_QUESTIONS
    ai_provider: str = AI_PROVIDER
    ai_model: str = AI_MODEL
    ai_api_key: str = AI_API_KEY
    ai_base_url: str | None = AI_BASE_URL
    ai_temperature: float = AI_TEMPERATURE
    ai_max_tokens: int = AI_MAX_TOKENS
    ai_enabled: bool = AI_ENABLED
    ai_timeout: int | None = AI_TIMEOUT

    def with_overrides(self, **changes) -> "Settings":
        return replace(self, **changes)


def load_settings(**overrides) -> Settings:
    """Return a Settings snapshot of the current module values plus overrides."""
    return Settings().with_overrides(**overrides) if overrides else Settings()


def log_startup_config() -> None:
    """Log one startup line summarising active configuration."""
    logger.info(
        "quizparse config: OCR_CONFIDENCE_THRESHOLD=%s OCR_LANGUAGE=%s "
        "OCR_AI_FALLBACK=%s DOCUMENT_MAX_PAGES=%s DOCUMENT_TEXT_MIN_CHARS=%s "
        "CACHE_MAX_ENTRIES=%s CACHE_TTL_SECONDS=%s AI_PROVIDER=%s AI_MODEL=%s "
        "AI_ENABLED=%s AI_CONFIGURED=%s",
        OCR_CONFIDENCE_THRESHOLD,
        OCR_LANGUAGE,
        OCR_AI_FALLBACK,
        DOCUMENT_MAX_PAGES,
        DOCUMENT_TEXT_MIN_CHARS,
        CACHE_MAX_ENTRIES,
        CACHE_TTL_SECONDS,
        AI_PROVIDER,
        AI_MODEL,
        AI_ENABLED,
        bool(AI_API_KEY),
    )
