from __future__ import annotations

import pytest

from src.surfacegen.exceptions import (
    GenerationError,
    ImageValidationError,
    RateLimitError,
    TransientGenerationError,
)
from src.surfacegen.generation.retry_policy import (
    RetryAction,
    RetryPolicy,
    is_rate_limit_message,
    is_rate_limited,
)


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy(
        base_delay_seconds=2.0,
        max_delay_seconds=60.0,
        max_attempts=10,
        rate_limit_delay_seconds=2.0,
        rate_limit_max_attempts=2,
    )


def test_backoff_doubles_until_cap(policy: RetryPolicy) -> None:
    delays_ms = [policy.backoff_delay(attempt) * 1000 for attempt in range(1, 6)]

    assert delays_ms == [2000, 4000, 8000, 16000, 32000]
    assert policy.backoff_delay(7) * 1000 == 60000


def test_backoff_handles_huge_attempt_numbers(policy: RetryPolicy) -> None:
    assert policy.backoff_delay(10_000) == 60.0


def test_backoff_rejects_zero_attempt(policy: RetryPolicy) -> None:
    with pytest.raises(ValueError):
        policy.backoff_delay(0)


def test_success_decision(policy: RetryPolicy) -> None:
    assert policy.decide(None, attempt=3).action is RetryAction.SUCCESS


def test_transient_error_retries_with_backoff(policy: RetryPolicy) -> None:
    decision = policy.decide(TransientGenerationError("boom"), attempt=3)

    assert decision.action is RetryAction.RETRY
    assert decision.delay_seconds == 8.0
    assert decision.rate_limited is False


def test_last_attempt_escalates(policy: RetryPolicy) -> None:
    decision = policy.decide(TransientGenerationError("boom"), attempt=10)

    assert decision.action is RetryAction.ESCALATE


def test_rate_limit_fast_path(policy: RetryPolicy) -> None:
    first = policy.decide(RateLimitError("429 Too Many Requests"), attempt=1)
    second = policy.decide(RateLimitError("429 Too Many Requests"), attempt=2)

    assert first.action is RetryAction.RETRY
    assert first.delay_seconds == 2.0
    assert first.rate_limited is True
    assert second.action is RetryAction.ESCALATE
    assert second.rate_limited is True


def test_rate_limit_counter_is_separate_from_attempt(policy: RetryPolicy) -> None:
    # two ordinary failures followed by the first rate limit still gets one fast retry
    decision = policy.decide(RateLimitError("quota"), attempt=3, rate_limit_attempts=1)

    assert decision.action is RetryAction.RETRY
    assert decision.delay_seconds == 2.0


def test_rate_limit_detected_from_message(policy: RetryPolicy) -> None:
    error = GenerationError("upstream said RESOURCE_EXHAUSTED")

    assert is_rate_limited(error)
    assert policy.decide(error, attempt=1).rate_limited is True


def test_validation_error_is_transient(policy: RetryPolicy) -> None:
    decision = policy.decide(ImageValidationError("corrupt image"), attempt=1)

    assert decision.action is RetryAction.RETRY
    assert decision.rate_limited is False


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Rate limit exceeded", True),
        ("HTTP 429", True),
        ("Quota exhausted for project", True),
        ("resource exhausted", True),
        ("Too Many Requests", True),
        ("connection reset", False),
        ("", False),
        (None, False),
    ],
)
def test_is_rate_limit_message(message: str | None, expected: bool) -> None:
    assert is_rate_limit_message(message) is expected


def test_policy_rejects_invalid_ceilings() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
