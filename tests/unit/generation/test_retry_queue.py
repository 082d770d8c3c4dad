from __future__ import annotations

import asyncio

from src.surfacegen.catalog.catalog import Template
from src.surfacegen.generation.retry_queue import BackgroundRetryQueue, RetryQueueItem
from tests.mocks.clock import ManualClock


def _item(index: int, logo, retry, run_id: str = "run-1") -> RetryQueueItem:
    template = Template(id=f"t{index}", name=f"T{index}", category="c", prompt=f"p{index}")
    return RetryQueueItem(run_id=run_id, template=template, logo=logo, retry=retry)


async def _noop(item: RetryQueueItem) -> None:
    return None


def test_queue_drops_items_beyond_capacity(logo) -> None:
    queue = BackgroundRetryQueue(max_size=50, autostart=False)

    accepted = [queue.enqueue(_item(index, logo, _noop)) for index in range(60)]

    assert len(queue) == 50
    assert accepted.count(True) == 50
    assert accepted[50:] == [False] * 10


def test_requeue_of_same_job_replaces_entry_and_keeps_age(logo) -> None:
    clock = ManualClock()
    queue = BackgroundRetryQueue(autostart=False, clock=clock)
    first = _item(1, logo, _noop)
    queue.enqueue(first)
    clock.advance(minutes=10)

    queue.enqueue(_item(1, logo, _noop))

    assert len(queue) == 1
    assert queue.items()[0].created_at == first.created_at


def test_tick_processes_at_most_concurrency_items(logo) -> None:
    processed: list[str] = []

    async def _retry(item: RetryQueueItem) -> None:
        processed.append(item.id)

    queue = BackgroundRetryQueue(concurrency=3, autostart=False)
    for index in range(5):
        queue.enqueue(_item(index, logo, _retry))

    handled = asyncio.run(queue.process_tick())

    assert handled == 3
    assert processed == ["run-1:t0", "run-1:t1", "run-1:t2"]
    assert len(queue) == 2
    assert all(item.attempts == 0 for item in queue.items())


def test_items_are_removed_even_when_retry_fails(logo) -> None:
    async def _boom(item: RetryQueueItem) -> None:
        raise RuntimeError("still broken")

    queue = BackgroundRetryQueue(autostart=False)
    queue.enqueue(_item(1, logo, _boom))

    asyncio.run(queue.process_tick())

    assert len(queue) == 0


def test_stale_items_are_evicted_without_retry(logo) -> None:
    clock = ManualClock()
    processed: list[str] = []

    async def _retry(item: RetryQueueItem) -> None:
        processed.append(item.id)

    queue = BackgroundRetryQueue(stale_after_seconds=30 * 60, autostart=False, clock=clock)
    queue.enqueue(_item(1, logo, _retry))
    clock.advance(minutes=31)
    queue.enqueue(_item(2, logo, _retry))

    asyncio.run(queue.process_tick())

    assert processed == ["run-1:t2"]
    assert len(queue) == 0


def test_processor_stops_when_drained_and_restarts_on_enqueue(logo, sleep_recorder) -> None:
    processed: list[str] = []

    async def _retry(item: RetryQueueItem) -> None:
        processed.append(item.id)

    async def _run() -> None:
        queue = BackgroundRetryQueue(interval_seconds=5.0, sleep=sleep_recorder)
        queue.enqueue(_item(1, logo, _retry))
        assert queue.is_running
        for _ in range(10):
            await asyncio.sleep(0)
        assert not queue.is_running
        assert processed == ["run-1:t1"]

        queue.enqueue(_item(2, logo, _retry))
        assert queue.is_running
        for _ in range(10):
            await asyncio.sleep(0)
        assert not queue.is_running
        await queue.stop()

    asyncio.run(_run())

    assert processed == ["run-1:t1", "run-1:t2"]
    assert sleep_recorder.delays == [5.0, 5.0]


def test_retry_callback_can_requeue_itself(logo, sleep_recorder) -> None:
    seen: list[int] = []

    async def _run() -> None:
        queue = BackgroundRetryQueue(sleep=sleep_recorder)

        async def _retry(item: RetryQueueItem) -> None:
            seen.append(item.attempts)
            if item.attempts < 3:
                queue.enqueue(item)

        queue.enqueue(_item(1, logo, _retry))
        for _ in range(30):
            await asyncio.sleep(0)
        await queue.stop()

    asyncio.run(_run())

    assert seen == [1, 2, 3]
