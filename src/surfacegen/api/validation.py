"""Logo upload validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import UploadFile

from ..domain.models import LogoRef
from .errors import payload_too_large_error, unsupported_media_error

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LogoUploadValidator:
    """Check content type and size of an uploaded logo."""

    allowed_content_types: tuple[str, ...]
    max_bytes: int
    chunk_size_bytes: int = 1024 * 1024

    async def read_logo(self, upload: UploadFile) -> LogoRef:
        if upload.content_type not in self.allowed_content_types:
            logger.warning(
                "upload.logo.unsupported_media",
                extra={"content_type": upload.content_type},
            )
            raise unsupported_media_error(upload.content_type)

        chunks: list[bytes] = []
        size = 0
        try:
            while True:
                chunk = await upload.read(self.chunk_size_bytes)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_bytes:
                    logger.warning(
                        "upload.logo.payload_too_large",
                        extra={"size_bytes": size, "limit_bytes": self.max_bytes},
                    )
                    raise payload_too_large_error(size, self.max_bytes)
                chunks.append(chunk)
        finally:
            await upload.close()

        if not size:
            raise unsupported_media_error(upload.content_type)
        return LogoRef.from_bytes(
            b"".join(chunks),
            mime_type=upload.content_type,
            name=upload.filename or "logo",
        )


__all__ = ["LogoUploadValidator"]
