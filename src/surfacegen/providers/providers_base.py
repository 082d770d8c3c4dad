"""Abstract image generator definition."""

from abc import ABC, abstractmethod

from ..domain.models import LogoRef


class ImageGenerator(ABC):
    """Base interface for external image generators."""

    @abstractmethod
    async def generate(self, logo: LogoRef, prompt: str) -> str:
        """Composite ``logo`` according to ``prompt`` and return an image reference.

        The reference is either an ``http(s)`` URL or a ``data:`` URI. Failures
        raise :class:`~src.surfacegen.exceptions.GenerationError`.
        """

    async def aclose(self) -> None:
        """Release network resources held by the generator."""
