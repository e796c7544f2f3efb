# server/app/routers/analyze.py
from __future__ import annotations

import asyncio
import logging
import re
import time
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from server.app.config import Settings, get_settings
from server.app.dependencies.auth import current_user_id, require_auth
from server.app.dependencies.rate_limit import ai_rate_limit
from server.app.models import AnalyzeImageIn
from server.app.services.ai_logs import (
    AiLogStore,
    get_ai_log_store,
    record_ai_log_async,
    serialize_errors,
)
from server.app.services.fallback import (
    FallbackResolver,
    ProviderKeys,
    fallback_payload,
)
from server.app.services.image_payload import parse_image_payload
from server.app.services.normalize import normalize_response, strip_code_fences
from server.app.telemetry import telemetry
from server.providers.vision.base import MODE_ANALYZE, truncate

log = logging.getLogger(__name__)
router = APIRouter(tags=["analyze"])

LOG_TYPE = "analyze-image"
_ALLOWED_DATA_URI = re.compile(r"^data:image/(jpeg|jpg|png|gif|webp);base64,", re.IGNORECASE)


def get_resolver(settings: Settings = Depends(get_settings)) -> FallbackResolver:
    return FallbackResolver(settings)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


def _validation_message(err: ValidationError) -> str:
    if any(e.get("loc", ())[:1] == ("type",) for e in err.errors()):
        return "Invalid analysis type"
    return "Image data is required"


@router.post("/analyze-image")
async def analyze_image(
    request: Request,
    _: bool = Depends(require_auth),
    __: None = Depends(ai_rate_limit),
    settings: Settings = Depends(get_settings),
    resolver: FallbackResolver = Depends(get_resolver),
    store: AiLogStore = Depends(get_ai_log_store),
    user_id: Optional[str] = Depends(current_user_id),
):
    """
    Analyze an image (or regenerate its caption) through the provider chain.

    • 400 on missing/oversized/undecodable image data (no provider is called)
    • 429 once the client has used its per-minute AI budget
    • 200 with provider output, or the static fallback body when every provider failed
    • 502 when a provider answered but nothing was left after cleaning
    """
    try:
        body = AnalyzeImageIn(**(await request.json()))
    except ValidationError as e:
        return _bad_request(_validation_message(e))
    except (ValueError, TypeError):
        return _bad_request("Image data is required")

    raw_image = body.imageBase64
    mode = body.type or MODE_ANALYZE

    if len(raw_image) > settings.MAX_IMAGE_BASE64_CHARS:
        return _bad_request("Image too large. Maximum size is 10MB.")
    if "," in raw_image and not _ALLOWED_DATA_URI.match(raw_image.strip()):
        return _bad_request("Invalid image format.")

    payload = parse_image_payload(raw_image)
    if payload.is_empty():
        return _bad_request("Invalid image data")

    keys = ProviderKeys.resolve(request.headers, settings)
    request_id = str(uuid.uuid4())
    start_time = time.time()
    telemetry.increment("analyze_total")
    telemetry.log_json(
        "analyze_start",
        request_id=request_id,
        mode=mode,
        mime_type=payload.mime_type,
        providers=keys.enabled(),
    )

    # adapters block on HTTP; keep the event loop free
    loop = asyncio.get_running_loop()
    outcome = await loop.run_in_executor(None, resolver.resolve, payload, mode, keys)
    duration_ms = int((time.time() - start_time) * 1000)

    if outcome.errors:
        telemetry.increment("provider_failures_total", len(outcome.errors))
        for err in outcome.errors:
            telemetry.log_json(
                "provider_failed",
                level="warning",
                request_id=request_id,
                provider=err.provider,
                model=err.model,
                status=err.status,
            )

    if outcome.result is None:
        message = (
            "All AI providers failed" if outcome.attempted else "No AI provider is configured"
        )
        log.warning("[analyze] %s; serving fallback (mode=%s)", message, mode)
        telemetry.increment("analyze_fallback_total")
        telemetry.set_error(message)
        telemetry.log_json(
            "analyze_fallback",
            level="warning",
            request_id=request_id,
            mode=mode,
            attempted=outcome.attempted,
            duration_ms=duration_ms,
        )
        await record_ai_log_async(
            store,
            type=LOG_TYPE,
            user_id=user_id,
            status_code=503,
            message=message,
            raw=serialize_errors(outcome.errors, settings.AI_LOG_RAW_MAX_CHARS),
        )
        return JSONResponse(fallback_payload(mode))

    result = outcome.result
    cleaned = strip_code_fences(result.text)
    if not cleaned:
        # provider answered but the text was nothing but fences; do not fall through
        log.error("[analyze] %s/%s returned empty text", result.provider, result.model)
        telemetry.set_error("No response from AI service")
        telemetry.log_json(
            "analyze_empty",
            level="error",
            request_id=request_id,
            provider=result.provider,
            model=result.model,
        )
        await record_ai_log_async(
            store,
            type=LOG_TYPE,
            user_id=user_id,
            status_code=502,
            message="No response from AI service",
            raw=truncate(result.text, settings.AI_LOG_RAW_MAX_CHARS),
        )
        return JSONResponse({"error": "No response from AI service"}, status_code=502)

    normalized = normalize_response(cleaned, mode)
    if normalized.degraded:
        log.info("[analyze] %s returned non-JSON analysis; degrading", result.provider)
        telemetry.increment("analyze_degraded_total")
        telemetry.log_json(
            "analyze_degraded",
            request_id=request_id,
            provider=result.provider,
            model=result.model,
        )
        await record_ai_log_async(
            store,
            type=LOG_TYPE,
            user_id=user_id,
            status_code=200,
            message=f"Unparseable analysis JSON from {result.provider}",
            raw=truncate(result.text, settings.AI_LOG_RAW_MAX_CHARS),
        )

    telemetry.log_json(
        "analyze_success",
        request_id=request_id,
        mode=mode,
        provider=result.provider,
        model=result.model,
        degraded=normalized.degraded,
        duration_ms=duration_ms,
    )
    return JSONResponse(normalized.body)
