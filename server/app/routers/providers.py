from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from server.app.config import Settings, get_settings
from server.app.dependencies.auth import require_auth
from server.app.models import ProvidersOut
from server.app.services.fallback import ProviderKeys
from server.app.services.provider_health import check_all

router = APIRouter(prefix="/ai", tags=["providers"])


@router.get("/providers", response_model=ProvidersOut)
async def providers(
    request: Request,
    _: bool = Depends(require_auth),
    settings: Settings = Depends(get_settings),
):
    """Probe Gemini, OpenRouter and HuggingFace concurrently (display only)."""
    keys = ProviderKeys.resolve(request.headers, settings)
    results = await check_all(settings, keys)
    return {
        "providers": results,
        "checkedAt": datetime.now(timezone.utc).isoformat(),
    }
