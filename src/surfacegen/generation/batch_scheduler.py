"""Fan a generation pass out into fixed-size concurrent batches."""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..catalog.catalog import Template
from ..domain.models import BatchProgress, Job

logger = logging.getLogger(__name__)

JobExecutor = Callable[[Template], Awaitable[Job]]
JobListener = Callable[[str, Job], Any]
ProgressListener = Callable[[BatchProgress], Any]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class BatchScheduler:
    """Run templates in consecutive batches of ``batch_size``.

    Jobs inside a batch run concurrently and are applied as each one finishes.
    The next batch starts only after every job of the current batch has
    returned. A job that raises is isolated: it is logged and reported as a
    masked ``loading`` job while the rest of the batch carries on.
    """

    def __init__(self, *, batch_size: int = 10) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self._logger = logging.getLogger(__name__)

    def batches(self, templates: Sequence[Template]) -> list[Sequence[Template]]:
        return [
            templates[index : index + self.batch_size]
            for index in range(0, len(templates), self.batch_size)
        ]

    async def run(
        self,
        templates: Sequence[Template],
        execute: JobExecutor,
        *,
        on_job_complete: JobListener | None = None,
        on_progress: ProgressListener | None = None,
    ) -> dict[str, Job]:
        templates = list(templates)
        total = len(templates)
        batch_count = math.ceil(total / self.batch_size) if total else 0
        results: dict[str, Job] = {}
        completed = 0

        async def _run_one(template: Template, batch_index: int) -> None:
            nonlocal completed
            try:
                job = await execute(template)
            except asyncio.CancelledError:
                raise
            except Exception:
                self._logger.exception(
                    "batch.job.crashed",
                    extra={"template_id": template.id, "batch_index": batch_index},
                )
                job = Job.loading(template.id, error_detail="job crashed")
            results[template.id] = job
            completed += 1
            if on_job_complete is not None:
                await _maybe_await(on_job_complete(template.id, job))
            if on_progress is not None:
                progress = BatchProgress(
                    completed=completed,
                    total=total,
                    batch_index=batch_index,
                    batch_count=batch_count,
                    last_template_id=template.id,
                )
                await _maybe_await(on_progress(progress))

        for batch_index, batch in enumerate(self.batches(templates)):
            self._logger.info(
                "batch.start",
                extra={"batch_index": batch_index, "batch_count": batch_count, "size": len(batch)},
            )
            outcomes = await asyncio.gather(
                *(_run_one(template, batch_index) for template in batch),
                return_exceptions=True,
            )
            for template, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    # a listener failed; the job result itself is already recorded
                    self._logger.error(
                        "batch.listener.failed",
                        exc_info=outcome,
                        extra={"template_id": template.id},
                    )
        self._logger.info("batch.finished", extra={"total": total, "completed": completed})
        return results


__all__ = ["BatchScheduler", "JobExecutor"]
