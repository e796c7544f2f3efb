# server/app/routers/status.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from server.app.config import Settings, get_settings
from server.app.dependencies.auth import require_auth
from server.app.services.ai_logs import AiLogStore, get_ai_log_store
from server.app.services.fallback import ProviderKeys
from server.app.telemetry import telemetry
from server.providers.vision.base import PROVIDER_ORDER

log = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/status")
async def status(
    _: bool = Depends(require_auth),
    settings: Settings = Depends(get_settings),
    store: AiLogStore = Depends(get_ai_log_store),
):
    """
    Returns service counters + which providers have a server-side key.
    Per-request header keys are not reflected here.
    """
    keys = ProviderKeys.resolve({}, settings)
    try:
        ai_logs_total = store.count()
    except Exception as e:
        log.warning("[status] ai_logs count failed: %s", e)
        telemetry.set_error(f"ai_logs_count: {e}")
        ai_logs_total = None

    data = {
        "ok": True,
        "providers": {
            "order": list(PROVIDER_ORDER),
            "configured": keys.enabled(),
            "gemini_models": settings.gemini_model_list(),
            "openrouter_model": settings.OPENROUTER_MODEL,
            "huggingface_model": settings.HUGGINGFACE_MODEL,
        },
        "ai_logs": ai_logs_total,
        **telemetry.get_stats(),
    }
    return JSONResponse(data)
