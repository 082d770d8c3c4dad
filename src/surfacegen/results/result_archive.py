"""Persist successful images of a run under ``results_root``."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..domain.models import GenerationRun
from ..exceptions import ImageValidationError
from ..generation.image_probe import decode_data_uri

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-z0-9._-]+")


@dataclass(slots=True)
class ArchivedResult:
    template_id: str
    path: Path
    checksum: str
    size_bytes: int


def identity_key(identity: str) -> str:
    """Filesystem-safe directory name for an identity."""

    cleaned = _UNSAFE.sub("_", identity.strip().lower()).strip("._")
    digest = hashlib.sha256(identity.strip().lower().encode("utf-8")).hexdigest()[:8]
    return f"{cleaned or 'anonymous'}-{digest}"


class ResultArchive:
    """Write ``<root>/<identity-key>/<run_id>/<template_id>.<ext>`` files.

    Failures are logged per image; archiving never raises into a run.
    """

    def __init__(
        self,
        root: Path,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.root = Path(root)
        self._http_client = http_client
        self._timeout_seconds = timeout_seconds
        self._logger = logging.getLogger(__name__)

    def run_dir(self, identity: str, run_id: str) -> Path:
        return self.root / identity_key(identity) / run_id

    async def save_run(self, identity: str, run: GenerationRun) -> list[ArchivedResult]:
        saved: list[ArchivedResult] = []
        target_dir = self.run_dir(identity, run.id)
        for template_id, image_ref in run.successful_images().items():
            try:
                data, mime = await self._read(image_ref)
                result = await asyncio.to_thread(
                    self._write, target_dir, template_id, data, mime
                )
            except (OSError, ImageValidationError, httpx.HTTPError) as exc:
                self._logger.error(
                    "results.archive.failed",
                    extra={"run_id": run.id, "template_id": template_id, "error": str(exc)},
                )
                continue
            saved.append(result)
        self._logger.info(
            "results.archive.saved",
            extra={"run_id": run.id, "count": len(saved)},
        )
        return saved

    async def _read(self, image_ref: str) -> tuple[bytes, str]:
        if image_ref.startswith("data:"):
            mime = image_ref[5:].split(";", 1)[0] or "image/png"
            return decode_data_uri(image_ref), mime
        if self._http_client is not None:
            response = await self._http_client.get(image_ref)
        else:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.get(image_ref)
        response.raise_for_status()
        mime = response.headers.get("content-type", "image/png").split(";", 1)[0]
        return response.content, mime

    @staticmethod
    def _write(target_dir: Path, template_id: str, data: bytes, mime: str) -> ArchivedResult:
        target_dir.mkdir(parents=True, exist_ok=True)
        extension = mimetypes.guess_extension(mime) or ".png"
        if extension == ".jpe":
            extension = ".jpg"
        target_path = target_dir / f"{template_id}{extension}"
        with target_path.open("wb") as handle:
            handle.write(data)
        return ArchivedResult(
            template_id=template_id,
            path=target_path,
            checksum=hashlib.sha256(data).hexdigest(),
            size_bytes=len(data),
        )


__all__ = ["ArchivedResult", "ResultArchive", "identity_key"]
