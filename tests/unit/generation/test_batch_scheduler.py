from __future__ import annotations

import asyncio

import pytest

from src.surfacegen.catalog.catalog import Template
from src.surfacegen.domain.models import BatchProgress, Job, JobStatus
from src.surfacegen.exceptions import TransientGenerationError
from src.surfacegen.generation.batch_scheduler import BatchScheduler
from src.surfacegen.generation.generator_client import GeneratorClient
from src.surfacegen.generation.job_runner import JobRunner
from tests.mocks.generators import ScriptedImageGenerator, png_data_uri


def _templates(count: int) -> list[Template]:
    return [
        Template(id=f"t{index}", name=f"T{index}", category="c", prompt=f"prompt-{index}")
        for index in range(1, count + 1)
    ]


def test_batches_are_consecutive_chunks() -> None:
    scheduler = BatchScheduler(batch_size=10)

    batches = scheduler.batches(_templates(23))

    assert [len(batch) for batch in batches] == [10, 10, 3]
    assert batches[1][0].id == "t11"


def test_next_batch_waits_for_previous_batch() -> None:
    started: list[str] = []
    finished: list[str] = []

    async def _execute(template: Template) -> Job:
        started.append(template.id)
        # first batch jobs finish in reverse order
        await asyncio.sleep(0.001 * (5 - int(template.id[1:])))
        finished.append(template.id)
        return Job.succeeded(template.id, png_data_uri(), attempt=1)

    asyncio.run(BatchScheduler(batch_size=2).run(_templates(4), _execute))

    assert started.index("t3") > finished.index("t1")
    assert started.index("t3") > finished.index("t2")


def test_every_completion_is_reported_with_progress() -> None:
    applied: list[str] = []
    progress: list[BatchProgress] = []

    async def _execute(template: Template) -> Job:
        return Job.succeeded(template.id, png_data_uri(), attempt=1)

    results = asyncio.run(
        BatchScheduler(batch_size=2).run(
            _templates(5),
            _execute,
            on_job_complete=lambda template_id, job: applied.append(template_id),
            on_progress=progress.append,
        )
    )

    assert len(results) == 5
    assert sorted(applied) == ["t1", "t2", "t3", "t4", "t5"]
    assert [item.completed for item in progress] == [1, 2, 3, 4, 5]
    assert progress[-1].total == 5
    assert progress[-1].batch_count == 3
    assert progress[-1].batch_index == 2


def test_crashing_job_is_isolated_and_masked() -> None:
    async def _execute(template: Template) -> Job:
        if template.id == "t2":
            raise RuntimeError("unexpected")
        return Job.succeeded(template.id, png_data_uri(), attempt=1)

    results = asyncio.run(BatchScheduler(batch_size=3).run(_templates(3), _execute))

    assert results["t2"].status == JobStatus.LOADING
    assert results["t1"].status == JobStatus.SUCCESS
    assert results["t3"].status == JobStatus.SUCCESS


def test_one_failing_job_does_not_hold_back_siblings(logo, sleep_recorder) -> None:
    templates = _templates(10)
    generator = ScriptedImageGenerator(
        {"prompt-3": [TransientGenerationError("always fails")] * 100}
    )
    runner = JobRunner(client=GeneratorClient(generator), sleep=sleep_recorder)
    completion_order: list[str] = []
    escalated: list[str] = []

    async def _execute(template: Template) -> Job:
        outcome = await runner.run(template, logo)
        if outcome.escalated:
            escalated.append(template.id)
        return outcome.job

    results = asyncio.run(
        BatchScheduler(batch_size=10).run(
            templates,
            _execute,
            on_job_complete=lambda template_id, job: completion_order.append(template_id),
        )
    )

    successes = [key for key, job in results.items() if job.status == JobStatus.SUCCESS]
    assert len(successes) == 9
    assert all(results[key].attempt == 1 for key in successes)
    assert results["t3"].status == JobStatus.LOADING
    assert escalated == ["t3"]
    assert completion_order[-1] == "t3"
    assert generator.calls_for("prompt-3") == 10


def test_invalid_batch_size() -> None:
    with pytest.raises(ValueError):
        BatchScheduler(batch_size=0)
