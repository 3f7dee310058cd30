from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict

DEFAULT_AI_BUILDERS_BASE_URL = "https://space.ai-builders.com/backend/v1"
DEFAULT_LLM_MODEL = "grok-4-fast"
DEFAULT_FX_RATES_URL = "https://api.exchangerate-api.com/v4/latest/USD"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    ai_builder_token: Optional[str] = None
    ai_builders_base_url: str = DEFAULT_AI_BUILDERS_BASE_URL
    llm_model: str = DEFAULT_LLM_MODEL
    fx_rates_url: str = DEFAULT_FX_RATES_URL
    upstream_timeout_s: float = 10.0
    llm_timeout_s: float = 60.0
    search_max_results: int = 5


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


def load_settings() -> Settings:
    return Settings(
        ai_builder_token=_env_str("AI_BUILDER_TOKEN"),
        ai_builders_base_url=(_env_str("AI_BUILDERS_BASE_URL") or DEFAULT_AI_BUILDERS_BASE_URL).rstrip("/"),
        llm_model=_env_str("LLM_MODEL") or DEFAULT_LLM_MODEL,
        fx_rates_url=_env_str("FX_RATES_URL") or DEFAULT_FX_RATES_URL,
        upstream_timeout_s=_env_float("UPSTREAM_TIMEOUT_S", 10.0),
        llm_timeout_s=_env_float("LLM_TIMEOUT_S", 60.0),
        search_max_results=max(1, min(_env_int("SEARCH_MAX_RESULTS", 5), 20)),
    )
