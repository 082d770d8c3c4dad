from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from src.surfacegen.exceptions import RateLimitError, TransientGenerationError
from src.surfacegen.providers.providers_factory import create_generator
from src.surfacegen.providers.providers_gemini import GeminiImageGenerator
from src.surfacegen.config import EngineSettings


class DummyResponse:
    def __init__(
        self, status_code: int, json_data: dict[str, Any] | None = None, text: str = ""
    ) -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self) -> dict[str, Any]:
        if self._json_data is None:
            raise ValueError("no json")
        return self._json_data


def _install(monkeypatch, responses: list[Any]) -> list[dict[str, Any]]:
    requests: list[dict[str, Any]] = []

    async def _post(self, url: str, *, headers: dict[str, str], json: dict[str, Any]):
        requests.append({"url": url, "headers": headers, "json": json})
        outcome = responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(GeminiImageGenerator, "_post", _post)
    return requests


def _image_payload(data: str = "aGVsbG8=") -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": [{"text": "ok"}, {"inlineData": {"mimeType": "image/webp", "data": data}}]}}
        ]
    }


def test_generate_returns_data_uri_and_sends_logo(monkeypatch, logo) -> None:
    requests = _install(monkeypatch, [DummyResponse(200, _image_payload())])
    generator = GeminiImageGenerator(api_keys=["key-a"], model="img-model", api_url_base="https://g.test/v1")

    image_ref = asyncio.run(generator.generate(logo, "put it on a bus"))

    assert image_ref == "data:image/webp;base64,aGVsbG8="
    request = requests[0]
    assert request["url"] == "https://g.test/v1/models/img-model:generateContent"
    assert request["headers"]["x-goog-api-key"] == "key-a"
    parts = request["json"]["contents"][0]["parts"]
    assert parts[0]["inline_data"] == {"mime_type": "image/png", "data": logo.data_base64}
    assert parts[1] == {"text": "put it on a bus"}


def test_keys_rotate_round_robin(monkeypatch, logo) -> None:
    requests = _install(
        monkeypatch, [DummyResponse(200, _image_payload()) for _ in range(3)]
    )
    generator = GeminiImageGenerator(api_keys=["a", "b"])

    async def _run() -> None:
        for _ in range(3):
            await generator.generate(logo, "prompt")

    asyncio.run(_run())

    assert [item["headers"]["x-goog-api-key"] for item in requests] == ["a", "b", "a"]


def test_rate_limit_skips_exhausted_key(monkeypatch, logo) -> None:
    requests = _install(
        monkeypatch,
        [
            DummyResponse(429, {"error": {"status": "RESOURCE_EXHAUSTED", "message": "Quota exceeded"}}),
            DummyResponse(200, _image_payload()),
        ],
    )
    generator = GeminiImageGenerator(api_keys=["a", "b", "c"])

    with pytest.raises(RateLimitError):
        asyncio.run(generator.generate(logo, "prompt"))
    asyncio.run(generator.generate(logo, "prompt"))

    assert [item["headers"]["x-goog-api-key"] for item in requests] == ["a", "c"]


def test_server_error_is_transient(monkeypatch, logo) -> None:
    _install(monkeypatch, [DummyResponse(500, {"error": {"status": "INTERNAL", "message": "oops"}})])
    generator = GeminiImageGenerator(api_keys=["a"])

    with pytest.raises(TransientGenerationError) as exc_info:
        asyncio.run(generator.generate(logo, "prompt"))

    assert exc_info.value.is_rate_limited is False
    assert "INTERNAL oops" in exc_info.value.message


def test_response_without_image_is_transient(monkeypatch, logo) -> None:
    payload = {"candidates": [{"content": {"parts": [{"text": "no"}]}, "finishReason": "SAFETY"}]}
    _install(monkeypatch, [DummyResponse(200, payload)])

    with pytest.raises(TransientGenerationError, match="SAFETY"):
        asyncio.run(GeminiImageGenerator(api_keys=["a"]).generate(logo, "prompt"))


def test_transport_error_is_transient(monkeypatch, logo) -> None:
    _install(monkeypatch, [httpx.ReadTimeout("timed out")])

    with pytest.raises(TransientGenerationError):
        asyncio.run(GeminiImageGenerator(api_keys=["a"]).generate(logo, "prompt"))


def test_generator_requires_a_key() -> None:
    with pytest.raises(ValueError):
        GeminiImageGenerator(api_keys=["", ""])


def test_factory_builds_gemini_from_settings() -> None:
    settings = EngineSettings(gemini_api_keys=["k1", "k2"], gemini_model="m")

    generator = create_generator("Gemini", settings=settings)

    assert isinstance(generator, GeminiImageGenerator)
    assert generator.api_keys == ("k1", "k2")
    assert generator.model == "m"
    with pytest.raises(ValueError):
        create_generator("unknown", settings=settings)
