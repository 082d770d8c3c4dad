"""Inline retry loop for one template generation."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from ..catalog.catalog import Template
from ..domain.models import Job, LogoRef
from ..exceptions import GenerationError
from .generator_client import GeneratorClient
from .retry_policy import RetryAction, RetryPolicy, is_rate_limited

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobOutcome:
    """Final state of one inline run.

    ``escalated`` jobs stay ``loading`` and must be handed to the background
    retry queue by the caller.
    """

    job: Job
    escalated: bool = False
    error: GenerationError | None = None


class JobRunner:
    """Drive a single job through the retry policy until it succeeds or escalates."""

    def __init__(
        self,
        *,
        client: GeneratorClient,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Any] | None = None,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = self._wrap_sleep(sleep)
        self._logger = logging.getLogger(__name__)

    @staticmethod
    def _wrap_sleep(
        sleep: Callable[[float], Any] | None,
    ) -> Callable[[float], Awaitable[None]]:
        if sleep is None:
            return asyncio.sleep

        async def _async_sleep(seconds: float) -> None:
            result = sleep(seconds)
            if inspect.isawaitable(result):
                await result

        return _async_sleep

    async def run(self, template: Template, logo: LogoRef, *, start_attempt: int = 1) -> JobOutcome:
        attempt = max(1, start_attempt)
        rate_limit_hits = 0
        while True:
            try:
                image_ref = await self.client.generate(logo, template.prompt)
            except GenerationError as exc:
                error = exc
            else:
                self._logger.info(
                    "generation.job.success",
                    extra={"template_id": template.id, "attempt": attempt},
                )
                return JobOutcome(job=Job.succeeded(template.id, image_ref, attempt=attempt))

            if is_rate_limited(error):
                rate_limit_hits += 1
            decision = self.policy.decide(
                error,
                attempt=attempt,
                rate_limit_attempts=rate_limit_hits if rate_limit_hits else None,
            )
            if decision.action is RetryAction.ESCALATE:
                self._logger.warning(
                    "generation.job.escalate",
                    extra={
                        "template_id": template.id,
                        "attempt": attempt,
                        "rate_limited": decision.rate_limited,
                        "error": error.message,
                    },
                )
                job = Job.loading(template.id, attempt=attempt, error_detail=error.message)
                return JobOutcome(job=job, escalated=True, error=error)

            self._logger.info(
                "generation.job.retry",
                extra={
                    "template_id": template.id,
                    "attempt": attempt,
                    "delay_seconds": decision.delay_seconds,
                    "rate_limited": decision.rate_limited,
                },
            )
            await self._sleep(decision.delay_seconds)
            attempt += 1


__all__ = ["JobOutcome", "JobRunner"]
