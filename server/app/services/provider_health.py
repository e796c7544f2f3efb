# server/app/services/provider_health.py
"""
Lightweight reachability/auth probes for the three vision providers.

Display only: the result never feeds into the fallback resolver. Probes run
concurrently, each bounded by PROVIDER_CHECK_TIMEOUT_MS.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from server.app.config import Settings
from server.app.services.fallback import ProviderKeys
from server.providers.vision.base import (
    GEMINI,
    HUGGINGFACE,
    OPENROUTER,
    PROVIDER_ORDER,
    truncate,
)

log = logging.getLogger(__name__)

OK = "ok"
UNAUTHORIZED = "unauthorized"
RATE_LIMITED = "rate_limited"
PROVIDER_ERROR = "provider_error"
REQUEST_FAILED = "request_failed"
MISSING_API_KEY = "missing_api_key"

_DETAIL_MAX = 300


def classify_status(status_code: int) -> str:
    if 200 <= status_code < 300:
        return OK
    if status_code in (401, 403):
        return UNAUTHORIZED
    if status_code == 429:
        return RATE_LIMITED
    if 500 <= status_code < 600:
        return PROVIDER_ERROR
    return REQUEST_FAILED


def _probe_request(provider: str, api_key: str, settings: Settings) -> Tuple[str, Dict[str, str]]:
    if provider == GEMINI:
        return (
            f"{settings.GEMINI_API_BASE.rstrip('/')}/models",
            {"x-goog-api-key": api_key},
        )
    if provider == OPENROUTER:
        return settings.OPENROUTER_MODELS_URL, {"Authorization": f"Bearer {api_key}"}
    return settings.HUGGINGFACE_WHOAMI_URL, {"Authorization": f"Bearer {api_key}"}


def _models_from(provider: str, data: Any, settings: Settings) -> List[str]:
    models: List[str] = []
    if provider == GEMINI and isinstance(data, dict):
        for m in data.get("models") or []:
            if isinstance(m, dict) and isinstance(m.get("name"), str):
                name = m["name"]
                models.append(name[len("models/"):] if name.startswith("models/") else name)
    elif provider == OPENROUTER and isinstance(data, dict):
        for m in data.get("data") or []:
            if isinstance(m, dict) and isinstance(m.get("id"), str):
                models.append(m["id"])
    elif provider == HUGGINGFACE:
        # whoami carries no model list; report the configured captioning model
        models.append(settings.HUGGINGFACE_MODEL)
    return models[: settings.HEALTH_MODELS_MAX]


def _detail_from(provider: str, status: str, data: Any, resp: requests.Response) -> str:
    if status != OK:
        return truncate(resp.text or f"HTTP {resp.status_code}", _DETAIL_MAX)
    if provider == HUGGINGFACE and isinstance(data, dict) and data.get("name"):
        return f"authenticated as {data['name']}"
    return "reachable"


def _result(
    provider: str,
    status: str,
    latency_ms: Optional[int],
    models: List[str],
    detail: str,
) -> Dict[str, Any]:
    return {
        "provider": provider,
        "status": status,
        "ok": status == OK,
        "latencyMs": latency_ms,
        "models": models,
        "detail": detail,
    }


def check_provider(provider: str, api_key: str, settings: Settings) -> Dict[str, Any]:
    """Blocking probe for one provider; never raises."""
    if not api_key:
        return _result(provider, MISSING_API_KEY, None, [], "no API key configured")

    url, headers = _probe_request(provider, api_key, settings)
    started = time.monotonic()
    try:
        resp = requests.get(url, headers=headers, timeout=settings.check_timeout_s)
    except requests.Timeout:
        latency = int((time.monotonic() - started) * 1000)
        return _result(
            provider,
            REQUEST_FAILED,
            latency,
            [],
            f"timed out after {settings.PROVIDER_CHECK_TIMEOUT_MS} ms",
        )
    except requests.RequestException as e:
        latency = int((time.monotonic() - started) * 1000)
        log.info("[providers] %s probe failed: %s", provider, e)
        return _result(provider, REQUEST_FAILED, latency, [], truncate(str(e), _DETAIL_MAX))

    latency = int((time.monotonic() - started) * 1000)
    status = classify_status(resp.status_code)
    data: Any = None
    if status == OK:
        try:
            data = resp.json()
        except ValueError:
            data = None
    models = _models_from(provider, data, settings) if status == OK else []
    return _result(provider, status, latency, models, _detail_from(provider, status, data, resp))


async def _bounded_check(provider: str, api_key: str, settings: Settings) -> Dict[str, Any]:
    # requests only bounds connect and each socket read; this caps the whole probe
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, check_provider, provider, api_key, settings)
    try:
        return await asyncio.wait_for(future, timeout=settings.check_timeout_s)
    except asyncio.TimeoutError:
        log.info("[providers] %s probe exceeded %s ms", provider, settings.PROVIDER_CHECK_TIMEOUT_MS)
        return _result(
            provider,
            REQUEST_FAILED,
            settings.PROVIDER_CHECK_TIMEOUT_MS,
            [],
            f"timed out after {settings.PROVIDER_CHECK_TIMEOUT_MS} ms",
        )


async def check_all(settings: Settings, keys: ProviderKeys) -> List[Dict[str, Any]]:
    """Probe every provider at once; results keep the fixed provider order."""
    tasks = [_bounded_check(p, keys.for_provider(p), settings) for p in PROVIDER_ORDER]
    return list(await asyncio.gather(*tasks))
