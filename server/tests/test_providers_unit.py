import json
from unittest.mock import Mock, patch

import requests

from server.app.services.image_payload import ImagePayload
from server.providers.vision import gemini, huggingface, openrouter
from server.providers.vision.base import build_prompt

PAYLOAD = ImagePayload(mime_type="image/png", data="aGVsbG8=")


def _response(status_code=200, json_body=None, text=""):
    resp = Mock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = json_body
    return resp


def _gemini_body(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


class TestGeminiAdapter:
    @patch("requests.post")
    def test_first_model_success_returns_immediately(self, mock_post, settings):
        mock_post.return_value = _response(json_body=_gemini_body('{"title": ', '"x"}'))

        outcome = gemini.attempt(PAYLOAD, build_prompt("analyze"), "g-key", settings)

        assert outcome.result.provider == "gemini"
        assert outcome.result.model == "gemini-2.5-flash"
        assert outcome.result.text == '{"title": "x"}'
        assert outcome.errors == []
        mock_post.assert_called_once()

    @patch("requests.post")
    def test_request_shape(self, mock_post, settings):
        mock_post.return_value = _response(json_body=_gemini_body("ok"))

        gemini.attempt(PAYLOAD, build_prompt("regenerate_caption"), "g-key", settings)

        args, kwargs = mock_post.call_args
        assert args[0].endswith("/models/gemini-2.5-flash:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == "g-key"
        parts = kwargs["json"]["contents"][0]["parts"]
        assert "caption" in parts[0]["text"]
        assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": "aGVsbG8="}}

    @patch("requests.post")
    def test_falls_through_model_list(self, mock_post, settings):
        mock_post.side_effect = [
            _response(status_code=503, text="overloaded"),
            _response(json_body=_gemini_body("second model text")),
        ]

        outcome = gemini.attempt(PAYLOAD, build_prompt("analyze"), "g-key", settings)

        assert outcome.result.model == "gemini-2.0-flash"
        assert len(outcome.errors) == 1
        assert outcome.errors[0].model == "gemini-2.5-flash"
        assert outcome.errors[0].status == 503
        assert outcome.errors[0].raw == "overloaded"

    @patch("requests.post")
    def test_empty_text_and_network_error_exhaust_models(self, mock_post, settings):
        mock_post.side_effect = [
            _response(json_body=_gemini_body("   ")),
            requests.ConnectionError("boom"),
        ]

        outcome = gemini.attempt(PAYLOAD, build_prompt("analyze"), "g-key", settings)

        assert outcome.result is None
        assert [e.status for e in outcome.errors] == [200, 0]
        assert "boom" in outcome.errors[1].raw

    @patch("requests.post")
    def test_chat_maps_history_roles(self, mock_post, settings):
        mock_post.return_value = _response(json_body=_gemini_body("hello there"))

        outcome = gemini.chat(
            "and now?",
            [{"role": "user", "content": "hi"}, {"role": "ai", "content": "hey"}],
            "g-key",
            settings,
        )

        assert outcome.result.text == "hello there"
        contents = mock_post.call_args.kwargs["json"]["contents"]
        assert [c["role"] for c in contents] == ["user", "user", "model", "user"]
        assert contents[-1]["parts"][0]["text"] == "and now?"


class TestOpenRouterAdapter:
    @patch("requests.post")
    def test_string_content(self, mock_post, settings):
        mock_post.return_value = _response(
            json_body={"choices": [{"message": {"content": "  a caption  "}}]}
        )

        outcome = openrouter.attempt(PAYLOAD, build_prompt("regenerate_caption"), "o-key", settings)

        assert outcome.result.provider == "openrouter"
        assert outcome.result.text == "a caption"
        kwargs = mock_post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer o-key"
        messages = kwargs["json"]["messages"]
        assert messages[0]["role"] == "system"
        assert messages[1]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,aGVsbG8="},
        }

    def test_extract_content_from_parts(self):
        data = {
            "choices": [
                {"message": {"content": ["first", {"type": "text", "text": "second"}, {"x": 1}]}}
            ]
        }
        assert openrouter.extract_content(data) == "first\nsecond"

    def test_extract_content_missing(self):
        assert openrouter.extract_content({"choices": []}) == ""
        assert openrouter.extract_content({"choices": [{"message": {"content": None}}]}) == ""

    @patch("requests.post")
    def test_empty_content_is_an_error(self, mock_post, settings):
        mock_post.return_value = _response(
            json_body={"choices": [{"message": {"content": [{"text": "  "}]}}]}
        )

        outcome = openrouter.attempt(PAYLOAD, build_prompt("analyze"), "o-key", settings)

        assert outcome.result is None
        assert outcome.errors[0].provider == "openrouter"
        assert outcome.errors[0].status == 200

    @patch("requests.post")
    def test_http_error_is_recorded_and_truncated(self, mock_post, settings):
        mock_post.return_value = _response(status_code=402, text="x" * 2000)

        outcome = openrouter.attempt(PAYLOAD, build_prompt("analyze"), "o-key", settings)

        assert outcome.result is None
        assert outcome.errors[0].status == 402
        assert len(outcome.errors[0].raw) == settings.PROVIDER_ERROR_RAW_MAX_CHARS


class TestHuggingFaceAdapter:
    @patch("requests.post")
    def test_posts_raw_bytes_with_image_content_type(self, mock_post, settings):
        mock_post.return_value = _response(json_body=[{"generated_text": "a dog on a beach"}])

        outcome = huggingface.attempt(PAYLOAD, build_prompt("regenerate_caption"), "h-key", settings)

        assert outcome.result.text == "a dog on a beach"
        kwargs = mock_post.call_args.kwargs
        assert kwargs["data"] == b"hello"
        assert kwargs["headers"]["Content-Type"] == "image/png"
        assert kwargs["headers"]["Authorization"] == "Bearer h-key"

    @patch("requests.post")
    def test_analyze_wraps_caption(self, mock_post, settings):
        mock_post.return_value = _response(json_body={"generated_text": "a red bike"})

        outcome = huggingface.attempt(PAYLOAD, build_prompt("analyze"), "h-key", settings)

        assert json.loads(outcome.result.text) == {
            "title": "Image",
            "description": "a red bike",
            "caption": "a red bike",
            "tags": ["image", "caption"],
        }

    def test_caption_shape_priority(self):
        assert huggingface.extract_caption([{"generated_text": "obj"}]) == "obj"
        assert huggingface.extract_caption({"generated_text": "single"}) == "single"
        assert huggingface.extract_caption(["plain"]) == "plain"
        assert huggingface.extract_caption([{"generated_text": ""}, "fallback"]) == "fallback"
        assert huggingface.extract_caption({"error": "loading"}) is None

    @patch("requests.post")
    def test_undecodable_image_never_calls_api(self, mock_post, settings):
        bad = ImagePayload("image/png", "%%%")

        outcome = huggingface.attempt(bad, build_prompt("analyze"), "h-key", settings)

        assert outcome.result is None
        assert outcome.errors[0].status == 0
        mock_post.assert_not_called()
