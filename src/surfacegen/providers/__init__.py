"""External image generator adapters."""

from .providers_base import ImageGenerator
from .providers_factory import create_generator
from .providers_gemini import GeminiImageGenerator

__all__ = ["GeminiImageGenerator", "ImageGenerator", "create_generator"]
