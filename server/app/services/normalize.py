from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from server.providers.vision.base import MODE_REGENERATE_CAPTION

_LEADING_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?```\s*$")


@dataclass(frozen=True)
class NormalizedResponse:
    body: Any
    degraded: bool = False


def strip_code_fences(text: str) -> str:
    """Drop a leading ``` / ```json fence and a trailing ``` fence."""
    cleaned = (text or "").strip()
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    cleaned = _TRAILING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite JSON constant {token}")


def degraded_analysis(text: str) -> dict:
    return {
        "title": "Image",
        "description": text,
        "caption": text.split(".")[0] + ".",
        "tags": ["image"],
    }


def normalize_response(text: str, mode: str) -> NormalizedResponse:
    """
    Turn cleaned provider text into the caller-facing body.

    Caption mode passes the text through. Analyze mode trusts any valid JSON
    the provider produced (no schema check) and otherwise builds a synthetic
    analysis from the prose, flagged `degraded`. NaN and Infinity are not JSON
    and degrade like any other parse failure.
    """
    if mode == MODE_REGENERATE_CAPTION:
        return NormalizedResponse({"caption": text})
    try:
        return NormalizedResponse(json.loads(text, parse_constant=_reject_constant))
    except ValueError:
        return NormalizedResponse(degraded_analysis(text), degraded=True)
