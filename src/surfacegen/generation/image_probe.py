"""Post-generation image validity check."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from io import BytesIO

import httpx
from PIL import Image

from ..exceptions import ImageValidationError

logger = logging.getLogger(__name__)


def decode_data_uri(image_ref: str) -> bytes:
    """Return the bytes embedded in a ``data:<mime>;base64,<payload>`` URI."""

    header, sep, payload = image_ref.partition(",")
    if not sep or not header.startswith("data:") or ";base64" not in header:
        raise ImageValidationError("image reference is not a base64 data URI")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ImageValidationError("image data URI payload is not valid base64") from exc
    if not data:
        raise ImageValidationError("image data URI is empty")
    return data


def load_image(payload: bytes) -> tuple[int, int]:
    """Fully decode ``payload`` with Pillow and return its size."""

    try:
        with Image.open(BytesIO(payload)) as image:
            image.load()
            width, height = image.size
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise ImageValidationError(f"generated image failed to load: {exc}") from exc
    if width <= 0 or height <= 0:
        raise ImageValidationError("generated image has no pixels")
    return width, height


@dataclass(slots=True)
class ImageProbe:
    """Decode an image reference within a hard timeout.

    A decode failure and a timeout are both reported as
    :class:`ImageValidationError`; the probe always resolves.
    """

    timeout_seconds: float = 10.0
    http_client: httpx.AsyncClient | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def check(self, image_ref: str) -> tuple[int, int]:
        if not image_ref:
            raise ImageValidationError("generator returned an empty image reference")
        try:
            return await asyncio.wait_for(self._load(image_ref), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            self.log.warning(
                "image_probe.timeout",
                extra={"timeout_seconds": self.timeout_seconds},
            )
            raise ImageValidationError(
                f"generated image did not load within {self.timeout_seconds:.1f}s"
            ) from exc

    async def _load(self, image_ref: str) -> tuple[int, int]:
        payload = await self._read_bytes(image_ref)
        return await asyncio.to_thread(load_image, payload)

    async def _read_bytes(self, image_ref: str) -> bytes:
        if image_ref.startswith("data:"):
            return decode_data_uri(image_ref)
        if image_ref.startswith(("http://", "https://")):
            return await self._fetch(image_ref)
        raise ImageValidationError("unsupported image reference")

    async def _fetch(self, url: str) -> bytes:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ImageValidationError(f"generated image could not be fetched: {exc}") from exc
        if response.status_code != 200:
            raise ImageValidationError(
                f"generated image could not be fetched (status={response.status_code})"
            )
        return response.content


__all__ = ["ImageProbe", "decode_data_uri", "load_image"]
