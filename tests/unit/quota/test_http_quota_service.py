from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from src.surfacegen.exceptions import QuotaExceededError, QuotaServiceError
from src.surfacegen.quota.quota_service import HttpQuotaService


def _service(handler) -> tuple[HttpQuotaService, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpQuotaService("https://verify.test/", client=client), client


def test_check_posts_email_and_parses_counter() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"canRegenerate": True, "regenerationCount": 1, "maxRegenerations": 3},
        )

    service, client = _service(handler)

    status = asyncio.run(service.can_regenerate(" User@Example.com"))

    assert (status.used, status.maximum) == (1, 3)
    assert str(requests[0].url) == "https://verify.test/api/check-regeneration-limit"
    assert json.loads(requests[0].content) == {"email": "user@example.com"}
    asyncio.run(client.aclose())


def test_consume_maps_403_to_quota_exceeded() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/regenerate-images"
        return httpx.Response(
            403,
            json={"error": "Regeneration limit exceeded", "regenerationCount": 3, "maxRegenerations": 3},
        )

    service, _ = _service(handler)

    with pytest.raises(QuotaExceededError) as exc_info:
        asyncio.run(service.consume_regeneration("a@b.c"))

    assert (exc_info.value.used, exc_info.value.maximum) == (3, 3)


def test_consume_returns_new_counter() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "regenerationCount": 2, "maxRegenerations": 3})

    service, _ = _service(handler)

    status = asyncio.run(service.consume_regeneration("a@b.c"))

    assert (status.used, status.maximum) == (2, 3)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(404, json={"error": "Email not found"}),
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(500, text="boom"),
    ],
)
def test_unexpected_answers_raise_service_error(response: httpx.Response) -> None:
    service, _ = _service(lambda request: response)

    with pytest.raises(QuotaServiceError):
        asyncio.run(service.can_regenerate("a@b.c"))


def test_transport_failure_raises_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    service, _ = _service(handler)

    with pytest.raises(QuotaServiceError):
        asyncio.run(service.can_regenerate("a@b.c"))
