"""Factory for image generators."""

from ..config import EngineSettings
from .providers_base import ImageGenerator
from .providers_gemini import GeminiImageGenerator


def create_generator(name: str, *, settings: EngineSettings) -> ImageGenerator:
    """Instantiate an image generator by provider name."""
    lower = name.lower()
    if lower == "gemini":
        return GeminiImageGenerator(
            api_keys=settings.gemini_api_keys,
            model=settings.gemini_model,
            api_url_base=settings.gemini_api_url_base,
            timeout_seconds=settings.generator_timeout_seconds,
        )
    raise ValueError(f"Unsupported generator provider '{name}'")
