"""Gemini image generator implementation."""

from __future__ import annotations

import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from ..domain.models import LogoRef
from ..exceptions import GenerationError, RateLimitError, TransientGenerationError
from ..generation.retry_policy import is_rate_limit_message
from .providers_base import ImageGenerator

logger = logging.getLogger(__name__)

_RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED"}


@dataclass(slots=True)
class GeminiImageGenerator(ImageGenerator):
    """Call the Gemini ``generateContent`` endpoint with a logo and a prompt.

    Requests rotate round-robin over ``api_keys``; a rate-limited key is
    skipped for the next request, so a rate limit usually clears on the
    following attempt.
    """

    api_keys: Sequence[str]
    model: str = "gemini-2.5-flash-image"
    api_url_base: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout_seconds: float = 60.0
    log: logging.Logger = field(default_factory=lambda: logger)
    _key_cycle: Any = field(init=False, repr=False)
    _current_key: str | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        keys = [key for key in self.api_keys if key]
        if not keys:
            raise ValueError("at least one Gemini API key is required")
        self.api_keys = tuple(keys)
        self._key_cycle = itertools.cycle(self.api_keys)

    async def generate(self, logo: LogoRef, prompt: str) -> str:
        if not prompt:
            raise TransientGenerationError("Gemini prompt is required")

        api_key = self._next_key()
        url = f"{self.api_url_base}/models/{self.model}:generateContent"
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }
        body: dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inline_data": {"mime_type": logo.mime_type, "data": logo.data_base64}},
                        {"text": prompt},
                    ],
                }
            ],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

        self.log.info(
            "gemini.request.start",
            extra={"model": self.model, "logo_mime": logo.mime_type, "prompt_len": len(prompt)},
        )
        try:
            response = await self._post(url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            message = f"Gemini HTTP error: {exc}"
            if is_rate_limit_message(message):
                raise RateLimitError(message) from exc
            raise TransientGenerationError(message) from exc

        if response.status_code != 200:
            raise self._error_from_response(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise TransientGenerationError("Gemini response is not valid JSON") from exc

        image_ref = _extract_data_uri(data)
        if image_ref is None:
            candidate = (data.get("candidates") or [{}])[0] or {}
            finish_reason = candidate.get("finishReason") or candidate.get("finish_reason")
            finish_message = candidate.get("finishMessage") or candidate.get("finish_message")
            preview = json.dumps(_mask_inline_data(data), ensure_ascii=False)[:2000]
            self.log.warning("gemini.response.no_inline_data %s", preview)
            raise TransientGenerationError(
                finish_message or f"Gemini response has no image (finish_reason={finish_reason})"
            )

        self.log.info("gemini.request.success", extra={"model": self.model})
        return image_ref

    async def _post(
        self, url: str, *, headers: dict[str, str], json: dict[str, Any]
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, headers=headers, json=json)

    def _next_key(self) -> str:
        self._current_key = next(self._key_cycle)
        return self._current_key

    def _error_from_response(self, response: httpx.Response) -> GenerationError:
        detail = _extract_error(response)
        status = _error_status(response)
        self.log.error(
            "gemini.response.error status=%s detail=%s",
            response.status_code,
            detail,
            extra={"status_code": response.status_code},
        )
        message = f"Gemini request failed (status={response.status_code}): {detail}"
        if (
            response.status_code == 429
            or status in _RATE_LIMIT_STATUSES
            or is_rate_limit_message(detail)
        ):
            # the key that was just used is rate limited; skip past it
            if len(self.api_keys) > 1:
                self._next_key()
            return RateLimitError(message)
        return TransientGenerationError(message)


def _extract_data_uri(data: dict[str, Any]) -> str | None:
    for candidate in data.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts", []):
            inline = part.get("inline_data") or part.get("inlineData")
            if inline and inline.get("data"):
                mime = inline.get("mime_type") or inline.get("mimeType") or "image/png"
                return f"data:{mime};base64,{inline['data']}"
    return None


def _error_status(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("status") or "").upper()
    return ""


def _extract_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        message = (error.get("message") or "").strip()
        status = (error.get("status") or "").strip()
        return " ".join(part for part in (status, message) if part)
    return str(data)


def _mask_inline_data(obj: Any) -> Any:
    """Remove inline_data payloads to avoid logging base64 blobs."""
    if isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if key in {"inline_data", "inlineData"} and isinstance(value, dict):
                result[key] = {k: v for k, v in value.items() if k != "data"}
            else:
                result[key] = _mask_inline_data(value)
        return result
    if isinstance(obj, list):
        return [_mask_inline_data(item) for item in obj]
    return obj
