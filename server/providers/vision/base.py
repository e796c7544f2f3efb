# server/providers/vision/base.py
"""
Shared shapes for the vision provider adapters.

Every adapter returns an `AttemptOutcome`: at most one result plus the
ordered error records it collected on the way. Adapters never raise; the
resolver only looks at `outcome.result`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import requests

GEMINI = "gemini"
OPENROUTER = "openrouter"
HUGGINGFACE = "huggingface"

PROVIDER_ORDER = (GEMINI, OPENROUTER, HUGGINGFACE)

MODE_ANALYZE = "analyze"
MODE_REGENERATE_CAPTION = "regenerate_caption"
MODES = (MODE_ANALYZE, MODE_REGENERATE_CAPTION)

ANALYZE_SYSTEM_PROMPT = """You are an expert image analyst. Analyze the provided image and return a JSON object with these fields:
- title: A short, catchy title for the image (max 8 words)
- description: A detailed description of what's in the image (2-3 sentences)
- caption: A creative caption suitable for social media (1 sentence)
- tags: An array of 3-6 relevant tags describing the content

Return ONLY valid JSON, no markdown formatting."""
ANALYZE_USER_PROMPT = (
    "Analyze this image and provide the title, description, caption, and tags."
)

CAPTION_SYSTEM_PROMPT = (
    "You are a creative caption writer. Generate a fresh, engaging caption for "
    "social media based on the image. Return ONLY the caption text, nothing else."
)
CAPTION_USER_PROMPT = "Generate a new creative caption for this image."


@dataclass(frozen=True)
class PromptContext:
    mode: str
    system_prompt: str
    user_prompt: str

    @property
    def combined(self) -> str:
        return f"{self.system_prompt}\n\n{self.user_prompt}"


def build_prompt(mode: str) -> PromptContext:
    if mode == MODE_ANALYZE:
        return PromptContext(mode, ANALYZE_SYSTEM_PROMPT, ANALYZE_USER_PROMPT)
    return PromptContext(mode, CAPTION_SYSTEM_PROMPT, CAPTION_USER_PROMPT)


@dataclass(frozen=True)
class ProviderAttemptResult:
    provider: str
    model: str
    text: str  # raw, uncleaned


@dataclass(frozen=True)
class ProviderErrorRecord:
    provider: str
    model: str
    status: int  # 0 -> no HTTP status (network / local failure)
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AttemptOutcome:
    result: Optional[ProviderAttemptResult] = None
    errors: List[ProviderErrorRecord] = field(default_factory=list)

    def fail(self, provider: str, model: str, status: int, raw: str, limit: int):
        self.errors.append(
            ProviderErrorRecord(provider, model, status, truncate(raw, limit))
        )
        return self


def truncate(text: Any, limit: int) -> str:
    s = "" if text is None else str(text)
    return s if len(s) <= limit else s[:limit]


def response_error_text(resp: requests.Response) -> str:
    return resp.text or getattr(resp, "reason", "") or ""


__all__ = [
    "GEMINI",
    "OPENROUTER",
    "HUGGINGFACE",
    "PROVIDER_ORDER",
    "MODE_ANALYZE",
    "MODE_REGENERATE_CAPTION",
    "MODES",
    "PromptContext",
    "build_prompt",
    "ProviderAttemptResult",
    "ProviderErrorRecord",
    "AttemptOutcome",
    "truncate",
    "response_error_text",
]
