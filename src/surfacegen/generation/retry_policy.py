"""Retry decisions for failed generation attempts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from ..exceptions import GenerationError

_RATE_LIMIT_PATTERN = re.compile(
    r"rate[\s_-]?limit|\b429\b|quota|resource[\s_-]?exhausted|too many requests",
    re.IGNORECASE,
)


def is_rate_limit_message(message: str | None) -> bool:
    """Return ``True`` when ``message`` describes a rate-limit or quota failure."""

    if not message:
        return False
    return bool(_RATE_LIMIT_PATTERN.search(message))


def is_rate_limited(error: BaseException) -> bool:
    if isinstance(error, GenerationError):
        return error.is_rate_limited or is_rate_limit_message(error.message)
    return is_rate_limit_message(str(error))


class RetryAction(StrEnum):
    RETRY = "retry"
    ESCALATE = "escalate"
    SUCCESS = "success"


@dataclass(frozen=True, slots=True)
class RetryDecision:
    """Advice returned to the caller; the policy never mutates shared state."""

    action: RetryAction
    delay_seconds: float = 0.0
    rate_limited: bool = False

    @classmethod
    def retry(cls, delay_seconds: float, *, rate_limited: bool = False) -> "RetryDecision":
        return cls(RetryAction.RETRY, delay_seconds, rate_limited)

    @classmethod
    def escalate(cls, *, rate_limited: bool = False) -> "RetryDecision":
        return cls(RetryAction.ESCALATE, 0.0, rate_limited)

    @classmethod
    def success(cls) -> "RetryDecision":
        return cls(RetryAction.SUCCESS)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with a ceiling plus a fast path for rate limits.

    Ordinary failures wait ``min(base * 2**(attempt-1), max)`` seconds and are
    retried until ``max_attempts``. Rate-limit failures wait a short fixed
    delay and are retried until ``rate_limit_max_attempts`` rate-limited
    attempts have been seen. Exhausting either budget escalates the job to the
    background retry queue; a job is never simply abandoned.
    """

    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 60.0
    max_attempts: int = 10
    rate_limit_delay_seconds: float = 2.0
    rate_limit_max_attempts: int = 2

    def __post_init__(self) -> None:
        if self.max_attempts < 1 or self.rate_limit_max_attempts < 1:
            raise ValueError("attempt ceilings must be at least 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be non-negative")

    def backoff_delay(self, attempt: int) -> float:
        """Delay after the failed ``attempt`` (1-based) for ordinary errors."""

        if attempt < 1:
            raise ValueError("attempt is 1-based")
        # cap the exponent so huge attempt numbers cannot overflow
        exponent = min(attempt - 1, 62)
        return min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)

    def decide(
        self,
        error: BaseException | None,
        *,
        attempt: int,
        rate_limit_attempts: int | None = None,
    ) -> RetryDecision:
        """Advise what to do after ``attempt`` finished with ``error``.

        ``rate_limit_attempts`` counts the rate-limited failures seen so far for
        this job, including the current one; when omitted ``attempt`` is used.
        """

        if error is None:
            return RetryDecision.success()

        if is_rate_limited(error):
            seen = attempt if rate_limit_attempts is None else max(rate_limit_attempts, 1)
            if seen >= self.rate_limit_max_attempts or attempt >= self.max_attempts:
                return RetryDecision.escalate(rate_limited=True)
            return RetryDecision.retry(self.rate_limit_delay_seconds, rate_limited=True)

        if attempt >= self.max_attempts:
            return RetryDecision.escalate()
        return RetryDecision.retry(self.backoff_delay(attempt))


__all__ = [
    "RetryAction",
    "RetryDecision",
    "RetryPolicy",
    "is_rate_limit_message",
    "is_rate_limited",
]
