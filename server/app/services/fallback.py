# server/app/services/fallback.py
"""
Provider fallback resolver for image analysis.

Order is fixed: Gemini -> OpenRouter -> HuggingFace. A provider without a
key is skipped silently (no call, no error record). Providers run one after
another and the first result wins; nothing is retried and nothing is
remembered between requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

from server.app.config import Settings
from server.app.services.image_payload import ImagePayload
from server.providers.vision import gemini, huggingface, openrouter
from server.providers.vision.base import (
    GEMINI,
    HUGGINGFACE,
    MODE_ANALYZE,
    OPENROUTER,
    PROVIDER_ORDER,
    AttemptOutcome,
    PromptContext,
    ProviderAttemptResult,
    ProviderErrorRecord,
    build_prompt,
)

log = logging.getLogger(__name__)

Adapter = Callable[[ImagePayload, PromptContext, str, Settings], AttemptOutcome]

KEY_HEADERS = {
    GEMINI: "x-gemini-key",
    OPENROUTER: "x-openrouter-key",
    HUGGINGFACE: "x-huggingface-key",
}

UNAVAILABLE_MESSAGE = "AI analysis is temporarily unavailable."


@dataclass(frozen=True)
class ProviderKeys:
    gemini: str = ""
    openrouter: str = ""
    huggingface: str = ""

    def for_provider(self, provider: str) -> str:
        return getattr(self, provider, "") or ""

    def enabled(self) -> List[str]:
        return [p for p in PROVIDER_ORDER if self.for_provider(p)]

    @classmethod
    def resolve(cls, headers: Mapping[str, str], settings: Settings) -> "ProviderKeys":
        """Per-request header wins when non-empty; otherwise the configured key."""
        env_keys = {
            GEMINI: settings.GEMINI_API_KEY,
            OPENROUTER: settings.OPENROUTER_API_KEY,
            HUGGINGFACE: settings.HUGGINGFACE_API_KEY,
        }
        values: Dict[str, str] = {}
        for provider, header in KEY_HEADERS.items():
            header_val = headers.get(header)
            if isinstance(header_val, str) and header_val.strip():
                values[provider] = header_val.strip()
            else:
                values[provider] = (env_keys[provider] or "").strip()
        return cls(**values)


@dataclass
class ResolveOutcome:
    result: Optional[ProviderAttemptResult] = None
    errors: List[ProviderErrorRecord] = field(default_factory=list)
    attempted: List[str] = field(default_factory=list)


def fallback_payload(mode: str) -> dict:
    """Static offline answer used when every configured provider failed."""
    if mode == MODE_ANALYZE:
        return {
            "title": "Untitled image",
            "description": UNAVAILABLE_MESSAGE,
            "caption": UNAVAILABLE_MESSAGE,
            "tags": ["image"],
            "fallback": True,
        }
    return {"caption": UNAVAILABLE_MESSAGE, "fallback": True}


class FallbackResolver:
    def __init__(
        self,
        settings: Settings,
        adapters: Optional[Mapping[str, Adapter]] = None,
    ) -> None:
        self.settings = settings
        self.adapters: Dict[str, Adapter] = dict(
            adapters
            or {
                GEMINI: gemini.attempt,
                OPENROUTER: openrouter.attempt,
                HUGGINGFACE: huggingface.attempt,
            }
        )

    def resolve(
        self, payload: ImagePayload, mode: str, keys: ProviderKeys
    ) -> ResolveOutcome:
        prompt = build_prompt(mode)
        outcome = ResolveOutcome()
        for provider in PROVIDER_ORDER:
            api_key = keys.for_provider(provider)
            if not api_key:
                continue
            outcome.attempted.append(provider)
            attempt = self._run_adapter(provider, payload, prompt, api_key)
            outcome.errors.extend(attempt.errors)
            if attempt.result is not None:
                log.info(
                    "[analyze] provider=%s model=%s succeeded after %d error(s)",
                    attempt.result.provider,
                    attempt.result.model,
                    len(outcome.errors),
                )
                outcome.result = attempt.result
                return outcome
            log.warning("[analyze] provider=%s failed; trying next", provider)
        return outcome

    def _run_adapter(
        self,
        provider: str,
        payload: ImagePayload,
        prompt: PromptContext,
        api_key: str,
    ) -> AttemptOutcome:
        adapter = self.adapters[provider]
        try:
            return adapter(payload, prompt, api_key, self.settings)
        except Exception as e:
            # adapters are expected to report failures as records; keep the chain going
            log.exception("[analyze] adapter %s raised", provider)
            return AttemptOutcome().fail(
                provider,
                "",
                0,
                f"adapter error: {e}",
                self.settings.PROVIDER_ERROR_RAW_MAX_CHARS,
            )
