"""Tests for the Gemini REST client and response parsing."""

import base64
from unittest.mock import MagicMock

import pytest
import requests

from config.settings import GenerationConfig
from core.cascade import is_retryable
from core.gemini import (
    GeminiImageClient,
    extract_inline_image,
    image_part,
    input_fidelity_for,
    parse_response,
    quality_for,
)
from utils.exceptions import ConfigurationError, UpstreamError

PNG = b"\x89PNG\r\n\x1a\nfake"
B64 = base64.b64encode(PNG).decode()


def _http(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    return resp


def _client(resp=None, api_key="k", exc=None):
    session = MagicMock()
    if exc is not None:
        session.post.side_effect = exc
    else:
        session.post.return_value = resp
    cfg = GenerationConfig(api_key=api_key, aspect_ratio="3:4", image_size="2K")
    return GeminiImageClient(cfg, session=session), session


class TestParsing:

    def test_camel_case_shape(self):
        img = extract_inline_image({"inlineData": {"mimeType": "image/webp", "data": B64}})
        assert img.data == PNG
        assert img.mime_type == "image/webp"

    def test_snake_case_shape(self):
        img = extract_inline_image({"inline_data": {"mime_type": "image/jpeg", "data": B64}})
        assert img.data == PNG
        assert img.mime_type == "image/jpeg"

    def test_non_image_part(self):
        assert extract_inline_image({"text": "hello"}) is None

    def test_image_part_roundtrip(self):
        assert extract_inline_image(image_part(PNG, "image/png")).data == PNG

    def test_first_image_with_preceding_notes(self):
        payload = {"candidates": [{"content": {"parts": [
            {"text": "  adjusted lighting "},
            {"inlineData": {"mimeType": "image/png", "data": B64}},
            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(b"second").decode()}},
        ]}}]}
        result = parse_response(payload)
        assert result.image.data == PNG
        assert result.text_notes == ["adjusted lighting"]

    def test_no_image_reports_reasons_and_notes(self):
        payload = {"candidates": [{"finishReason": "SAFETY", "content": {"parts": [{"text": "refused"}]}}]}
        with pytest.raises(UpstreamError) as exc:
            parse_response(payload, model="m")
        assert exc.value.code == "NO_IMAGE_DATA"
        assert "finishReasons=SAFETY" in exc.value.message
        assert "notes=refused" in exc.value.message
        assert exc.value.model == "m"

    def test_malformed_base64_is_no_image_data(self):
        with pytest.raises(UpstreamError) as exc:
            extract_inline_image({"inlineData": {"mimeType": "image/png", "data": "abc"}}, model="m")
        assert exc.value.code == "NO_IMAGE_DATA"
        assert exc.value.model == "m"
        assert is_retryable(exc.value)

    def test_malformed_base64_through_parse_response(self):
        payload = {"candidates": [{"content": {"parts": [{"inline_data": {"data": "not base64!"}}]}}]}
        with pytest.raises(UpstreamError) as exc:
            parse_response(payload, model="m")
        assert exc.value.code == "NO_IMAGE_DATA"

    def test_error_object(self):
        payload = {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "quota"}}
        with pytest.raises(UpstreamError) as exc:
            parse_response(payload)
        assert exc.value.status == 429
        assert exc.value.code == "RESOURCE_EXHAUSTED"

    def test_empty_payload(self):
        with pytest.raises(UpstreamError):
            parse_response(None)


class TestModelMetadata:

    @pytest.mark.parametrize("model,quality,fidelity", [
        ("gemini-3-pro-image-preview", "high", "high"),
        ("gemini-2.5-flash-image", "medium", "low"),
        ("custom-model", "auto", "low"),
    ])
    def test_derived(self, model, quality, fidelity):
        assert quality_for(model) == quality
        assert input_fidelity_for(model) == fidelity


class TestClient:

    def test_image_size_only_for_pro(self):
        client, _ = _client()
        assert client.image_config("gemini-3-pro-image-preview") == {"aspectRatio": "3:4", "imageSize": "2K"}
        assert client.image_config("gemini-2.5-flash-image") == {"aspectRatio": "3:4"}

    def test_post_shape(self):
        ok = {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": B64}}]}}]}
        client, session = _client(_http(200, ok))
        result = client.generate("models/x y", [{"text": "hi"}])
        assert result.image.data == PNG
        args, kwargs = session.post.call_args
        assert args[0].endswith("/models/models%2Fx%20y:generateContent")
        assert kwargs["headers"]["x-goog-api-key"] == "k"
        assert kwargs["json"]["generationConfig"]["responseModalities"] == ["IMAGE"]
        assert kwargs["json"]["contents"][0]["parts"] == [{"text": "hi"}]

    def test_missing_key(self):
        client, session = _client(api_key="")
        with pytest.raises(ConfigurationError) as exc:
            client.generate("m", [])
        assert exc.value.status == 503
        assert exc.value.code == "MISSING_API_KEY"
        session.post.assert_not_called()

    def test_http_error_carries_status_and_code(self):
        body = {"error": {"code": 404, "status": "NOT_FOUND", "message": "models/m is not found"}}
        client, _ = _client(_http(404, body))
        with pytest.raises(UpstreamError) as exc:
            client.generate("m", [])
        assert exc.value.status == 404
        assert exc.value.code == "NOT_FOUND"
        assert exc.value.model == "m"

    def test_http_error_without_body(self):
        client, _ = _client(_http(500, None))
        with pytest.raises(UpstreamError) as exc:
            client.generate("m", [])
        assert exc.value.status == 500
        assert "500" in exc.value.message

    def test_timeout(self):
        client, _ = _client(exc=requests.Timeout("slow"))
        with pytest.raises(UpstreamError) as exc:
            client.generate("m", [])
        assert exc.value.status == 504

    def test_transport_error(self):
        client, _ = _client(exc=requests.ConnectionError("down"))
        with pytest.raises(UpstreamError) as exc:
            client.generate("m", [])
        assert exc.value.status == 503
