# server/providers/vision/openrouter.py
"""OpenRouter chat-completions adapter (single model, single call)."""

from __future__ import annotations

from typing import Any, Optional

import requests

from server.app.config import Settings
from server.app.services.image_payload import ImagePayload
from server.providers.vision.base import (
    OPENROUTER,
    AttemptOutcome,
    PromptContext,
    ProviderAttemptResult,
    response_error_text,
)


def _content_from_string(content: Any) -> Optional[str]:
    if isinstance(content, str):
        return content.strip()
    return None


def _content_from_parts(content: Any) -> Optional[str]:
    if not isinstance(content, list):
        return None
    pieces = []
    for part in content:
        if isinstance(part, str):
            pieces.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            pieces.append(part["text"])
    return "\n".join(pieces).strip()


# Checked in order; first decoder that recognises the shape wins.
_CONTENT_DECODERS = (_content_from_string, _content_from_parts)


def extract_content(data: Any) -> str:
    """Flatten `choices[0].message.content` into plain text ("" if absent)."""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    for decode in _CONTENT_DECODERS:
        text = decode(content)
        if text is not None:
            return text
    return ""


def attempt(
    payload: ImagePayload,
    prompt: PromptContext,
    api_key: str,
    settings: Settings,
) -> AttemptOutcome:
    outcome = AttemptOutcome()
    model = settings.OPENROUTER_MODEL
    limit = settings.PROVIDER_ERROR_RAW_MAX_CHARS
    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": prompt.system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt.user_prompt},
                    {"type": "image_url", "image_url": {"url": payload.as_data_uri()}},
                ],
            },
        ],
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": settings.OPENROUTER_APP_URL,
        "X-Title": settings.OPENROUTER_APP_NAME,
    }

    try:
        resp = requests.post(
            settings.OPENROUTER_API_URL,
            headers=headers,
            json=body,
            timeout=settings.analyze_timeout_s,
        )
    except requests.RequestException as e:
        return outcome.fail(OPENROUTER, model, 0, f"network error: {e}", limit)

    if not (200 <= resp.status_code < 300):
        return outcome.fail(
            OPENROUTER, model, resp.status_code, response_error_text(resp), limit
        )

    try:
        data = resp.json()
    except ValueError as e:
        return outcome.fail(OPENROUTER, model, resp.status_code, f"invalid JSON: {e}", limit)

    text = extract_content(data)
    if not text:
        return outcome.fail(OPENROUTER, model, resp.status_code, "empty response content", limit)

    outcome.result = ProviderAttemptResult(OPENROUTER, model, text)
    return outcome
