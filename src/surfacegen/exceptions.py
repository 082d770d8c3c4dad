"""Engine level exceptions and helpers for repository layers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "EngineError",
    "GenerationError",
    "TransientGenerationError",
    "RateLimitError",
    "ImageValidationError",
    "QuotaExceededError",
    "QuotaServiceError",
    "IdentityMissingError",
    "PersistenceError",
    "HistoryReadOnlyError",
    "NoActiveRunError",
    "RunNotFoundError",
    "UnknownTemplateError",
    "handle_sqlalchemy_errors",
]


class EngineError(Exception):
    """Base class for orchestration engine errors."""


class GenerationError(EngineError):
    """Raised when a single image generation attempt fails."""

    def __init__(self, message: str, *, is_rate_limited: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.is_rate_limited = is_rate_limited


class TransientGenerationError(GenerationError):
    """Retryable failure subject to exponential backoff."""

    def __init__(self, message: str) -> None:
        super().__init__(message, is_rate_limited=False)


class RateLimitError(GenerationError):
    """Retryable failure caused by provider rate limits or quota exhaustion."""

    def __init__(self, message: str) -> None:
        super().__init__(message, is_rate_limited=True)


class ImageValidationError(TransientGenerationError):
    """Generated image is missing, corrupt or could not be decoded in time."""


class QuotaExceededError(EngineError):
    """Raised when an identity has no regenerations left."""

    def __init__(self, used: int, maximum: int) -> None:
        super().__init__(f"Regeneration limit reached ({used}/{maximum})")
        self.used = used
        self.maximum = maximum


class QuotaServiceError(EngineError):
    """Raised when the quota service cannot answer."""


class IdentityMissingError(EngineError):
    """Raised when no verified identity is available."""


class PersistenceError(EngineError):
    """Raised when durable history storage fails."""


class HistoryReadOnlyError(EngineError):
    """Raised when a mutation is requested while a past run is displayed."""


class NoActiveRunError(EngineError):
    """Raised when an operation needs a live run but none exists."""


class RunNotFoundError(EngineError):
    """Raised when a run id is not present in history."""


class UnknownTemplateError(EngineError):
    """Raised when a template id is not part of the catalog."""


@contextmanager
def handle_sqlalchemy_errors(*, entity: str | None = None) -> Iterator[None]:
    """Translate SQLAlchemy errors into :class:`PersistenceError`."""

    try:
        yield
    except sa_exc.SQLAlchemyError as exc:
        prefix = f"{entity}: " if entity else ""
        raise PersistenceError(f"{prefix}database operation failed") from exc
