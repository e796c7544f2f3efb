from server.app.services.fallback import (
    FallbackResolver,
    ProviderKeys,
    fallback_payload,
)
from server.app.services.image_payload import ImagePayload
from server.providers.vision.base import AttemptOutcome, ProviderAttemptResult

PAYLOAD = ImagePayload(mime_type="image/jpeg", data="aGVsbG8=")
ALL_KEYS = ProviderKeys(gemini="g", openrouter="o", huggingface="h")


class FakeAdapter:
    """Records calls; succeeds with `text` or fails with one error record."""

    def __init__(self, provider, text=None, model="m"):
        self.provider = provider
        self.text = text
        self.model = model
        self.calls = []

    def __call__(self, payload, prompt, api_key, settings):
        self.calls.append((payload, prompt.mode, api_key))
        outcome = AttemptOutcome()
        if self.text is None:
            return outcome.fail(self.provider, self.model, 500, "down", 100)
        outcome.result = ProviderAttemptResult(self.provider, self.model, self.text)
        return outcome


def _resolver(settings, g, o, h):
    return FallbackResolver(settings, adapters={"gemini": g, "openrouter": o, "huggingface": h})


def test_only_gemini_called_when_it_succeeds(settings):
    g, o, h = FakeAdapter("gemini", "g"), FakeAdapter("openrouter", "o"), FakeAdapter("huggingface", "h")

    outcome = _resolver(settings, g, o, h).resolve(PAYLOAD, "analyze", ALL_KEYS)

    assert outcome.result.provider == "gemini"
    assert len(g.calls) == 1
    assert o.calls == [] and h.calls == []
    assert outcome.errors == []


def test_sequential_fallback_to_openrouter(settings):
    g, o, h = FakeAdapter("gemini"), FakeAdapter("openrouter", "from openrouter"), FakeAdapter("huggingface", "h")

    outcome = _resolver(settings, g, o, h).resolve(PAYLOAD, "regenerate_caption", ALL_KEYS)

    assert outcome.result.text == "from openrouter"
    assert h.calls == []
    assert [e.provider for e in outcome.errors] == ["gemini"]
    assert outcome.attempted == ["gemini", "openrouter"]
    assert o.calls[0][1] == "regenerate_caption"


def test_all_fail_returns_no_result_with_ordered_errors(settings):
    g, o, h = FakeAdapter("gemini"), FakeAdapter("openrouter"), FakeAdapter("huggingface")

    outcome = _resolver(settings, g, o, h).resolve(PAYLOAD, "analyze", ALL_KEYS)

    assert outcome.result is None
    assert [e.provider for e in outcome.errors] == ["gemini", "openrouter", "huggingface"]


def test_unconfigured_providers_are_skipped_silently(settings):
    g, o, h = FakeAdapter("gemini", "g"), FakeAdapter("openrouter"), FakeAdapter("huggingface", "cap")

    outcome = _resolver(settings, g, o, h).resolve(
        PAYLOAD, "analyze", ProviderKeys(huggingface="h")
    )

    assert outcome.result.provider == "huggingface"
    assert g.calls == [] and o.calls == []
    assert outcome.errors == []
    assert outcome.attempted == ["huggingface"]


def test_no_keys_means_no_calls(settings):
    g, o, h = FakeAdapter("gemini", "g"), FakeAdapter("openrouter", "o"), FakeAdapter("huggingface", "h")

    outcome = _resolver(settings, g, o, h).resolve(PAYLOAD, "analyze", ProviderKeys())

    assert outcome.result is None
    assert outcome.errors == [] and outcome.attempted == []
    assert g.calls == [] and o.calls == [] and h.calls == []


def test_raising_adapter_becomes_error_record(settings):
    def broken(payload, prompt, api_key, settings):
        raise RuntimeError("bug")

    o = FakeAdapter("openrouter", "ok")
    outcome = _resolver(settings, broken, o, FakeAdapter("huggingface")).resolve(
        PAYLOAD, "analyze", ALL_KEYS
    )

    assert outcome.result.provider == "openrouter"
    assert outcome.errors[0].provider == "gemini"
    assert "bug" in outcome.errors[0].raw


def test_api_key_passed_through(settings):
    g = FakeAdapter("gemini", "g")
    _resolver(settings, g, FakeAdapter("openrouter"), FakeAdapter("huggingface")).resolve(
        PAYLOAD, "analyze", ALL_KEYS
    )
    assert g.calls[0][2] == "g"


class TestProviderKeys:
    def test_header_overrides_settings(self, settings):
        settings.GEMINI_API_KEY = "env-g"
        settings.OPENROUTER_API_KEY = "env-o"
        keys = ProviderKeys.resolve({"x-gemini-key": "  hdr-g  ", "x-openrouter-key": "  "}, settings)
        assert keys.gemini == "hdr-g"
        assert keys.openrouter == "env-o"
        assert keys.huggingface == ""
        assert keys.enabled() == ["gemini", "openrouter"]


def test_fallback_payloads():
    analyze = fallback_payload("analyze")
    assert analyze["fallback"] is True
    assert set(analyze) == {"title", "description", "caption", "tags", "fallback"}
    assert fallback_payload("regenerate_caption") == {
        "caption": "AI analysis is temporarily unavailable.",
        "fallback": True,
    }
