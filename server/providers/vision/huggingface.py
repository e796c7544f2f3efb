# server/providers/vision/huggingface.py
"""
HuggingFace Inference API adapter (image captioning model).

The model only captions, so for `analyze` requests the caption is wrapped
into an analysis-shaped JSON document that the normalizer parses like any
other provider's output.
"""

from __future__ import annotations

import json
from typing import Any, Optional

import requests

from server.app.config import Settings
from server.app.services.image_payload import ImagePayload
from server.providers.vision.base import (
    HUGGINGFACE,
    MODE_ANALYZE,
    AttemptOutcome,
    PromptContext,
    ProviderAttemptResult,
    response_error_text,
)


def _from_object_list(data: Any) -> Optional[str]:
    if not isinstance(data, list):
        return None
    for item in data:
        if isinstance(item, dict) and isinstance(item.get("generated_text"), str):
            text = item["generated_text"].strip()
            if text:
                return text
    return None


def _from_object(data: Any) -> Optional[str]:
    if isinstance(data, dict) and isinstance(data.get("generated_text"), str):
        return data["generated_text"].strip() or None
    return None


def _from_string_list(data: Any) -> Optional[str]:
    if not isinstance(data, list):
        return None
    for item in data:
        if isinstance(item, str) and item.strip():
            return item.strip()
    return None


_CAPTION_DECODERS = (_from_object_list, _from_object, _from_string_list)


def extract_caption(data: Any) -> Optional[str]:
    for decode in _CAPTION_DECODERS:
        caption = decode(data)
        if caption:
            return caption
    return None


def wrap_caption_as_analysis(caption: str) -> str:
    return json.dumps(
        {
            "title": "Image",
            "description": caption,
            "caption": caption,
            "tags": ["image", "caption"],
        }
    )


def attempt(
    payload: ImagePayload,
    prompt: PromptContext,
    api_key: str,
    settings: Settings,
) -> AttemptOutcome:
    outcome = AttemptOutcome()
    model = settings.HUGGINGFACE_MODEL
    limit = settings.PROVIDER_ERROR_RAW_MAX_CHARS

    try:
        image_bytes = payload.decode_bytes()
    except ValueError as e:
        return outcome.fail(HUGGINGFACE, model, 0, str(e), limit)

    try:
        resp = requests.post(
            f"{settings.HUGGINGFACE_API_BASE.rstrip('/')}/{model}",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": payload.mime_type,
            },
            data=image_bytes,
            timeout=settings.analyze_timeout_s,
        )
    except requests.RequestException as e:
        return outcome.fail(HUGGINGFACE, model, 0, f"network error: {e}", limit)

    if not (200 <= resp.status_code < 300):
        return outcome.fail(
            HUGGINGFACE, model, resp.status_code, response_error_text(resp), limit
        )

    try:
        data = resp.json()
    except ValueError as e:
        return outcome.fail(HUGGINGFACE, model, resp.status_code, f"invalid JSON: {e}", limit)

    caption = extract_caption(data)
    if not caption:
        return outcome.fail(HUGGINGFACE, model, resp.status_code, "no caption in response", limit)

    text = wrap_caption_as_analysis(caption) if prompt.mode == MODE_ANALYZE else caption
    outcome.result = ProviderAttemptResult(HUGGINGFACE, model, text)
    return outcome
