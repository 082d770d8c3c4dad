"""Single-attempt generation: call the provider, then verify the image."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..domain.models import LogoRef
from ..exceptions import GenerationError, ImageValidationError
from ..providers.providers_base import ImageGenerator
from .image_probe import ImageProbe
from .retry_policy import is_rate_limit_message

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GeneratorClient:
    """Produce one verified image reference or raise :class:`GenerationError`.

    Provider failures of any type are normalised so the retry policy only
    ever sees ``GenerationError`` with the rate-limit flag set when the
    failure text looks like a quota or throttling problem. Anything the image
    check raises becomes an :class:`ImageValidationError`.
    """

    generator: ImageGenerator
    probe: ImageProbe = field(default_factory=ImageProbe)
    log: logging.Logger = field(default_factory=lambda: logger)

    async def generate(self, logo: LogoRef, prompt: str) -> str:
        try:
            image_ref = await self.generator.generate(logo, prompt)
        except GenerationError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - provider adapters may raise anything
            message = str(exc) or exc.__class__.__name__
            self.log.warning(
                "generator.call.failed",
                extra={"error_type": exc.__class__.__name__},
            )
            raise GenerationError(
                message, is_rate_limited=is_rate_limit_message(message)
            ) from exc

        try:
            await self.probe.check(image_ref)
        except GenerationError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - any unreadable image counts as a failed attempt
            self.log.warning(
                "generator.validation.failed",
                extra={"error_type": exc.__class__.__name__},
            )
            raise ImageValidationError(
                f"generated image could not be checked: {exc.__class__.__name__}: {exc}"
            ) from exc
        return image_ref


__all__ = ["GeneratorClient"]
