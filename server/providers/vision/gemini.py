# server/providers/vision/gemini.py
"""
Google Gemini adapter (Generative Language API, `generateContent`).

Walks the configured model list in order and returns on the first model
that produces non-empty text. Each failed model adds one error record.

Usage:
    from server.providers.vision import gemini

    outcome = gemini.attempt(payload, build_prompt("analyze"), api_key, settings)
"""

from __future__ import annotations

from typing import Any, Dict, List

import requests

from server.app.config import Settings
from server.app.services.image_payload import ImagePayload
from server.providers.vision.base import (
    GEMINI,
    AttemptOutcome,
    PromptContext,
    ProviderAttemptResult,
    response_error_text,
)


def _endpoint(settings: Settings, model: str) -> str:
    return f"{settings.GEMINI_API_BASE.rstrip('/')}/models/{model}:generateContent"


def _extract_text(data: Any) -> str:
    """Concatenate every text part of the first candidate."""
    if not isinstance(data, dict):
        return ""
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return ""
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(
        p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)
    )


def _generate(
    settings: Settings,
    model: str,
    api_key: str,
    contents: List[Dict[str, Any]],
    outcome: AttemptOutcome,
    timeout: float,
) -> str:
    """One generateContent call; returns text or "" after recording the failure."""
    limit = settings.PROVIDER_ERROR_RAW_MAX_CHARS
    try:
        resp = requests.post(
            _endpoint(settings, model),
            headers={"Content-Type": "application/json", "x-goog-api-key": api_key},
            json={"contents": contents},
            timeout=timeout,
        )
    except requests.RequestException as e:
        outcome.fail(GEMINI, model, 0, f"network error: {e}", limit)
        return ""

    if not (200 <= resp.status_code < 300):
        outcome.fail(GEMINI, model, resp.status_code, response_error_text(resp), limit)
        return ""

    try:
        data = resp.json()
    except ValueError as e:
        outcome.fail(GEMINI, model, resp.status_code, f"invalid JSON: {e}", limit)
        return ""

    text = _extract_text(data)
    if not text.strip():
        outcome.fail(GEMINI, model, resp.status_code, "empty response text", limit)
        return ""
    return text


def attempt(
    payload: ImagePayload,
    prompt: PromptContext,
    api_key: str,
    settings: Settings,
) -> AttemptOutcome:
    outcome = AttemptOutcome()
    contents = [
        {
            "role": "user",
            "parts": [
                {"text": prompt.combined},
                {"inline_data": {"mime_type": payload.mime_type, "data": payload.data}},
            ],
        }
    ]
    for model in settings.gemini_model_list():
        text = _generate(
            settings, model, api_key, contents, outcome, settings.analyze_timeout_s
        )
        if text:
            outcome.result = ProviderAttemptResult(GEMINI, model, text)
            return outcome
    return outcome


CHAT_SYSTEM_PROMPT = (
    "You are Image Muse, a friendly AI assistant for an image gallery app. "
    "Be concise, helpful, and practical."
)


def chat(
    message: str,
    history: List[Dict[str, str]],
    api_key: str,
    settings: Settings,
) -> AttemptOutcome:
    """Text-only conversation for /ai-chat; `history` roles are 'user' or 'ai'."""
    outcome = AttemptOutcome()
    contents: List[Dict[str, Any]] = [
        {"role": "user", "parts": [{"text": CHAT_SYSTEM_PROMPT}]}
    ]
    for msg in history:
        role = "model" if msg.get("role") == "ai" else "user"
        contents.append({"role": role, "parts": [{"text": msg.get("content", "")}]})
    contents.append({"role": "user", "parts": [{"text": message}]})

    for model in settings.gemini_model_list():
        text = _generate(
            settings, model, api_key, contents, outcome, settings.analyze_timeout_s
        )
        if text:
            outcome.result = ProviderAttemptResult(GEMINI, model, text)
            return outcome
    return outcome
