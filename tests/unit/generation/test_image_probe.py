from __future__ import annotations

import asyncio
import base64

import httpx
import pytest

from src.surfacegen.exceptions import ImageValidationError
from src.surfacegen.generation.image_probe import ImageProbe, decode_data_uri
from tests.mocks.generators import png_bytes, png_data_uri


def test_probe_accepts_valid_png() -> None:
    probe = ImageProbe(timeout_seconds=5)

    assert asyncio.run(probe.check(png_data_uri())) == (4, 4)


def test_probe_rejects_corrupt_payload() -> None:
    probe = ImageProbe(timeout_seconds=5)
    corrupt = "data:image/png;base64," + base64.b64encode(b"not an image").decode()

    with pytest.raises(ImageValidationError):
        asyncio.run(probe.check(corrupt))


def test_probe_rejects_empty_reference() -> None:
    with pytest.raises(ImageValidationError):
        asyncio.run(ImageProbe().check(""))


def test_decode_data_uri_rejects_plain_text() -> None:
    with pytest.raises(ImageValidationError):
        decode_data_uri("hello")


def test_probe_times_out_instead_of_hanging(monkeypatch) -> None:
    probe = ImageProbe(timeout_seconds=0.05)

    async def _never(self, image_ref: str) -> tuple[int, int]:
        await asyncio.Event().wait()
        return (0, 0)

    monkeypatch.setattr(ImageProbe, "_load", _never)

    with pytest.raises(ImageValidationError, match="did not load"):
        asyncio.run(probe.check(png_data_uri()))


def test_probe_fetches_http_images() -> None:
    payload = png_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/ok.png":
            return httpx.Response(200, content=payload)
        return httpx.Response(404)

    async def _run() -> None:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            probe = ImageProbe(timeout_seconds=5, http_client=client)
            assert await probe.check("https://cdn.test/ok.png") == (4, 4)
            with pytest.raises(ImageValidationError):
                await probe.check("https://cdn.test/missing.png")

    asyncio.run(_run())
