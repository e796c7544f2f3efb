from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from server.app.config import Settings, get_settings
from server.app.dependencies.auth import current_user_id, require_auth
from server.app.dependencies.rate_limit import ai_rate_limit
from server.app.models import ChatIn
from server.app.services.ai_logs import (
    AiLogStore,
    get_ai_log_store,
    record_ai_log_async,
    serialize_errors,
)
from server.app.services.fallback import ProviderKeys
from server.app.telemetry import telemetry
from server.providers.vision import gemini

log = logging.getLogger(__name__)
router = APIRouter(tags=["chat"])

LOG_TYPE = "ai-chat"


@router.post("/ai-chat")
async def ai_chat(
    request: Request,
    _: bool = Depends(require_auth),
    __: None = Depends(ai_rate_limit),
    settings: Settings = Depends(get_settings),
    store: AiLogStore = Depends(get_ai_log_store),
    user_id: Optional[str] = Depends(current_user_id),
):
    try:
        body = ChatIn(**(await request.json()))
    except (ValidationError, ValueError, TypeError):
        return JSONResponse({"error": "Invalid chat payload"}, status_code=400)

    api_key = ProviderKeys.resolve(request.headers, settings).gemini
    if not api_key:
        await record_ai_log_async(
            store,
            type=LOG_TYPE,
            user_id=user_id,
            status_code=503,
            message="GEMINI_API_KEY is not configured",
        )
        return JSONResponse(
            {"error": "GEMINI_API_KEY is not configured", "fallback": True},
            status_code=503,
        )

    telemetry.increment("chat_total")
    history = [m.model_dump() for m in (body.history or [])]
    loop = asyncio.get_running_loop()
    outcome = await loop.run_in_executor(
        None, gemini.chat, body.message, history, api_key, settings
    )

    if outcome.result is not None:
        telemetry.log_json("chat_success", model=outcome.result.model)
        return JSONResponse({"reply": outcome.result.text.strip()})

    raw = serialize_errors(outcome.errors, settings.AI_LOG_RAW_MAX_CHARS)
    # every model answered 2xx with no text -> nothing to retry, report 502
    if outcome.errors and all(200 <= e.status < 300 for e in outcome.errors):
        log.warning("[chat] empty response from every Gemini model")
        telemetry.log_json("chat_empty", level="warning")
        await record_ai_log_async(
            store,
            type=LOG_TYPE,
            user_id=user_id,
            status_code=502,
            message="No response from AI service",
            raw=raw,
        )
        return JSONResponse({"error": "No response from AI service"}, status_code=502)

    status_code = outcome.errors[-1].status if outcome.errors else 503
    log.warning("[chat] Gemini gateway error status=%s", status_code)
    telemetry.set_error("AI gateway error")
    telemetry.log_json("chat_failure", level="error", status=status_code)
    await record_ai_log_async(
        store,
        type=LOG_TYPE,
        user_id=user_id,
        status_code=status_code,
        message="AI gateway error",
        raw=raw,
    )
    return JSONResponse(
        {"error": "AI service temporarily unavailable. Please try again later."},
        status_code=503,
    )
