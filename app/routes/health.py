from __future__ import annotations

import os

from fastapi import APIRouter, Request

router = APIRouter()


def _get_commit_sha() -> str | None:
    for key in (
        # Railway
        "RAILWAY_GIT_COMMIT_SHA",
        # Common CI providers
        "GITHUB_SHA",
        # Vercel
        "VERCEL_GIT_COMMIT_SHA",
        "COMMIT_SHA",
        "GIT_SHA",
    ):
        value = os.getenv(key)
        if value:
            return value
    return None


@router.get("/healthz")
def healthz(request: Request):
    settings = request.app.state.settings
    config = request.app.state.pricing_config
    return {
        "ok": True,
        "service": "luxe-price-agent",
        "commit_sha": _get_commit_sha(),
        "environment": os.getenv("RAILWAY_ENVIRONMENT_NAME") or os.getenv("ENVIRONMENT"),
        "llm_configured": bool(settings.ai_builder_token),
        "llm_model": settings.llm_model,
        "regions": [r.name for r in config.regions],
    }
