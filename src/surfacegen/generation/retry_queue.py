"""Background re-offering of jobs that exhausted their inline attempts."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from ..catalog.catalog import Template
from ..domain.models import LogoRef

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RetryQueueItem:
    """A parked job plus the callback that re-runs it through the pipeline."""

    run_id: str
    template: Template
    logo: LogoRef
    retry: Callable[["RetryQueueItem"], Awaitable[None]] = field(repr=False)
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime | None = None
    generation: int = 0

    @property
    def id(self) -> str:
        return f"{self.run_id}:{self.template.id}"


class BackgroundRetryQueue:
    """Bounded queue processed by a self-stopping periodic tick.

    At most ``max_size`` items are resident; enqueueing into a full queue drops
    the item. Every ``interval_seconds`` up to ``concurrency`` items are taken
    off the queue and retried; whatever the outcome they are not put back by
    the queue itself. Items older than ``stale_after_seconds`` are evicted
    without another attempt. The processor task exits once the queue drains
    and is started again by the next successful enqueue.
    """

    def __init__(
        self,
        *,
        max_size: int = 50,
        interval_seconds: float = 5.0,
        concurrency: int = 3,
        stale_after_seconds: float = 30 * 60,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], Any] | None = None,
        autostart: bool = True,
    ) -> None:
        if max_size < 1 or concurrency < 1:
            raise ValueError("max_size and concurrency must be positive")
        self.max_size = max_size
        self.interval_seconds = interval_seconds
        self.concurrency = concurrency
        self.stale_after = timedelta(seconds=stale_after_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = self._wrap_sleep(sleep)
        self._autostart = autostart
        self._items: dict[str, RetryQueueItem] = {}
        self._task: asyncio.Task[None] | None = None
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

    def __len__(self) -> int:
        return len(self._items)

    @property
    def size(self) -> int:
        return len(self._items)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def items(self) -> list[RetryQueueItem]:
        return list(self._items.values())

    def enqueue(self, item: RetryQueueItem) -> bool:
        """Park ``item``; return ``False`` when it was dropped because the queue is full."""

        if item.created_at is None:
            item.created_at = self._clock()
        if item.id in self._items:
            # keep the original parking time so staleness is measured from the first escalation
            item.created_at = self._items[item.id].created_at
            self._items[item.id] = item
        elif len(self._items) >= self.max_size:
            self._logger.warning(
                "retry_queue.full",
                extra={"item_id": item.id, "max_size": self.max_size},
            )
            return False
        else:
            self._items[item.id] = item
        self._logger.info(
            "retry_queue.enqueued",
            extra={"item_id": item.id, "size": len(self._items), "attempts": item.attempts},
        )
        if self._autostart:
            self._ensure_running()
        return True

    def remove(self, item_id: str) -> bool:
        return self._items.pop(item_id, None) is not None

    def clear(self) -> None:
        self._items.clear()

    def evict_stale(self) -> list[RetryQueueItem]:
        now = self._clock()
        stale = [
            item
            for item in self._items.values()
            if item.created_at is not None and now - item.created_at > self.stale_after
        ]
        for item in stale:
            del self._items[item.id]
            self._logger.info(
                "retry_queue.evicted_stale",
                extra={"item_id": item.id, "attempts": item.attempts},
            )
        return stale

    async def process_tick(self) -> int:
        """Run one tick; return the number of items handed back to the pipeline."""

        self.evict_stale()
        batch = list(self._items.values())[: self.concurrency]
        for item in batch:
            del self._items[item.id]
        if not batch:
            return 0
        for item in batch:
            item.attempts += 1
        results = await asyncio.gather(
            *(item.retry(item) for item in batch), return_exceptions=True
        )
        for item, result in zip(batch, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    "retry_queue.item.failed",
                    exc_info=result,
                    extra={"item_id": item.id},
                )
        return len(batch)

    async def run_until_empty(self) -> None:
        self._logger.info("retry_queue.processor.start", extra={"size": len(self._items)})
        try:
            while self._items:
                await self._sleep(self.interval_seconds)
                await self.process_tick()
        finally:
            self._logger.info("retry_queue.processor.stop")

    def _ensure_running(self) -> None:
        if self.is_running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._logger.warning("retry_queue.no_event_loop")
            return
        self._task = loop.create_task(self.run_until_empty())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


__all__ = ["BackgroundRetryQueue", "RetryQueueItem"]
