"""Generation orchestrator.

The orchestrator is the only entry point a UI talks to. It starts runs,
routes each job through the runner, hands exhausted jobs to the background
retry queue and applies every result to the run it was started for, located
by id. A run started later never receives results from an earlier one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ..catalog.catalog import Template, TemplateCatalog
from ..domain.models import (
    BatchProgress,
    GenerationRun,
    Job,
    JobStatus,
    LiveSessionSnapshot,
    LogoRef,
)
from ..exceptions import (
    GenerationError,
    HistoryReadOnlyError,
    IdentityMissingError,
    NoActiveRunError,
    QuotaExceededError,
    QuotaServiceError,
)
from ..generation.batch_scheduler import BatchScheduler
from ..generation.job_runner import JobOutcome, JobRunner
from ..generation.retry_queue import BackgroundRetryQueue, RetryQueueItem
from ..history.history_manager import SessionHistoryManager
from ..identity.identity_gate import IdentityGate
from ..quota.quota_gate import QuotaGate
from ..results.result_archive import ArchivedResult, ResultArchive

logger = logging.getLogger(__name__)

READY_TO_RETRY = "ready to retry"
QUOTA_UNAVAILABLE_NOTICE = (
    "We couldn't check your regeneration allowance right now. Please try again shortly."
)


class OrchestratorEventKind(StrEnum):
    RUN_STARTED = "run_started"
    JOB_UPDATED = "job_updated"
    RUN_FINISHED = "run_finished"
    VIEW_CHANGED = "view_changed"


@dataclass(slots=True)
class OrchestratorEvent:
    kind: OrchestratorEventKind
    run_id: str | None = None
    template_id: str | None = None
    job: Job | None = None
    progress: BatchProgress | None = None


@dataclass(slots=True)
class BulkRegenerateResult:
    """Outcome of a quota-gated "regenerate all" request.

    ``notice`` carries a calm user-facing message when nothing was started.
    """

    started: bool
    notice: str | None = None
    run_id: str | None = None
    used: int | None = None
    maximum: int | None = None


def limit_notice(used: int, maximum: int) -> str:
    return f"You have reached the maximum regeneration limit ({used}/{maximum})"


Listener = Callable[[OrchestratorEvent], Any]


class GenerationOrchestrator:
    """Façade over runs, history views, quota and the retry queue."""

    def __init__(
        self,
        *,
        catalog: TemplateCatalog,
        history: SessionHistoryManager,
        runner: JobRunner,
        scheduler: BatchScheduler,
        retry_queue: BackgroundRetryQueue,
        quota_gate: QuotaGate,
        identity: IdentityGate,
        archive: ResultArchive | None = None,
        surface_single_item_errors: bool = False,
    ) -> None:
        self.catalog = catalog
        self.history = history
        self.runner = runner
        self.scheduler = scheduler
        self.retry_queue = retry_queue
        self.quota_gate = quota_gate
        self.identity = identity
        self.archive = archive
        self.surface_single_item_errors = surface_single_item_errors
        self._listeners: list[Listener] = []
        self._active_runs: set[str] = set()
        self._progress: dict[str, BatchProgress] = {}
        self._generations: dict[str, dict[str, int]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # State exposed to the UI
    # ------------------------------------------------------------------
    @property
    def is_generating(self) -> bool:
        live = self.history.live_run
        return live is not None and live.id in self._active_runs

    @property
    def is_viewing_history(self) -> bool:
        return self.history.is_viewing_history

    @property
    def current_results(self) -> dict[str, Job]:
        run = self.history.current_view()
        return dict(run.results) if run is not None else {}

    def progress(self, run_id: str) -> BatchProgress | None:
        return self._progress.get(run_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every state change; return an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------
    async def generate_all(self, logo: LogoRef) -> GenerationRun:
        """Start a brand-new run for ``logo`` and wait until every batch has finished."""

        run = self.begin_run(logo)
        await self.execute_run(run)
        return run

    def start_all(self, logo: LogoRef) -> GenerationRun:
        """Start a new run in the background and return it immediately."""

        run = self.begin_run(logo)
        self._spawn(self.execute_run(run))
        return run

    def begin_run(self, logo: LogoRef) -> GenerationRun:
        run = self.history.start_run(logo)
        self._active_runs.add(run.id)
        self._forget_evicted_runs()
        self._logger.info(
            "orchestrator.run.started",
            extra={"run_id": run.id, "templates": len(run.results)},
        )
        self._emit(OrchestratorEvent(OrchestratorEventKind.RUN_STARTED, run_id=run.id))
        return run

    async def execute_run(self, run: GenerationRun) -> None:
        run_id = run.id
        logo = run.logo

        generations: dict[str, int] = {}

        async def _execute(template: Template) -> Job:
            generations[template.id] = self._generation(run_id, template.id)
            return await self._execute(run_id, template, logo, generations[template.id])

        def _on_job(template_id: str, job: Job) -> None:
            self._apply(run_id, template_id, job, generation=generations.get(template_id, 0))

        def _on_progress(progress: BatchProgress) -> None:
            self._progress[run_id] = progress

        try:
            await self.scheduler.run(
                list(self.catalog),
                _execute,
                on_job_complete=_on_job,
                on_progress=_on_progress,
            )
        finally:
            self._active_runs.discard(run_id)
            self._logger.info("orchestrator.run.finished", extra={"run_id": run_id})
            self._emit(OrchestratorEvent(OrchestratorEventKind.RUN_FINISHED, run_id=run_id))
        await self._archive_run(run)

    async def regenerate_one(self, template_id: str, *, wait: bool = True) -> Job:
        """Re-run one template of the live run.

        Rejected while a past run is displayed. With ``wait=False`` the
        masked ``loading`` job is returned and the work continues in the
        background.
        """

        if self.history.is_viewing_history:
            raise HistoryReadOnlyError("History is read-only; return to the current session first")
        run = self.history.live_run
        logo = self.history.live_logo
        if run is None or logo is None:
            raise NoActiveRunError("Upload a logo and generate before regenerating")
        template = self.catalog.get(template_id)
        run_id = run.id

        # a manual retry supersedes parked and in-flight attempts of the same job
        self.retry_queue.remove(f"{run_id}:{template_id}")
        generation = self._next_generation(run_id, template_id)
        loading = Job.loading(template_id)
        self._apply(run_id, template_id, loading, generation=generation)
        self._logger.info(
            "orchestrator.regenerate_one",
            extra={"run_id": run_id, "template_id": template_id},
        )
        if not wait:
            self._spawn(self._regenerate_single(run_id, template, logo, generation))
            return loading
        return await self._regenerate_single(run_id, template, logo, generation)

    async def regenerate_all(self, *, wait: bool = True) -> BulkRegenerateResult:
        """Quota-gated new run with the live logo.

        Identity and quota problems are reported once through ``notice``.
        The limit is checked first and consumed immediately before the run
        starts. The check and the consume are separate calls, so two
        concurrent requests for the same identity may both pass the check.
        """

        if self.history.is_viewing_history:
            raise HistoryReadOnlyError("History is read-only; return to the current session first")
        logo = self.history.live_logo
        if logo is None:
            raise NoActiveRunError("Upload a logo before regenerating")

        try:
            identity = self.identity.require()
        except IdentityMissingError as exc:
            self._logger.info("orchestrator.regenerate_all.identity_missing")
            return BulkRegenerateResult(started=False, notice=str(exc))

        try:
            check = await self.quota_gate.check_limit(identity)
        except QuotaServiceError as exc:
            self._logger.error("orchestrator.quota.unavailable", extra={"error": str(exc)})
            return BulkRegenerateResult(started=False, notice=QUOTA_UNAVAILABLE_NOTICE)
        if not check.can_proceed:
            return BulkRegenerateResult(
                started=False,
                notice=limit_notice(check.used, check.maximum),
                used=check.used,
                maximum=check.maximum,
            )

        try:
            status = await self.quota_gate.consume(identity)
        except QuotaExceededError as exc:
            return BulkRegenerateResult(
                started=False,
                notice=limit_notice(exc.used, exc.maximum),
                used=exc.used,
                maximum=exc.maximum,
            )
        except QuotaServiceError as exc:
            self._logger.error("orchestrator.quota.unavailable", extra={"error": str(exc)})
            return BulkRegenerateResult(started=False, notice=QUOTA_UNAVAILABLE_NOTICE)

        run = self.begin_run(logo)
        if wait:
            await self.execute_run(run)
        else:
            self._spawn(self.execute_run(run))
        return BulkRegenerateResult(
            started=True,
            run_id=run.id,
            used=status.used,
            maximum=status.maximum,
        )

    # ------------------------------------------------------------------
    # History view
    # ------------------------------------------------------------------
    def view_history(self, run_id: str) -> GenerationRun:
        run = self.history.snapshot_live_and_switch_to(run_id)
        self._emit(OrchestratorEvent(OrchestratorEventKind.VIEW_CHANGED, run_id=run.id))
        return run

    def back_to_current(self) -> LiveSessionSnapshot:
        snapshot = self.history.restore_live()
        run_id = snapshot.run.id if snapshot.run is not None else None
        self._emit(OrchestratorEvent(OrchestratorEventKind.VIEW_CHANGED, run_id=run_id))
        return snapshot

    async def save_current_results(self) -> list[ArchivedResult]:
        """Archive the successful images of the displayed run for the verified identity."""

        identity = self.identity.require()
        run = self.history.current_view()
        if run is None:
            raise NoActiveRunError("There are no results to save")
        if self.archive is None:
            self._logger.warning("orchestrator.archive.disabled", extra={"run_id": run.id})
            return []
        return await self.archive.save_run(identity, run)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.retry_queue.stop()
        await self.history.flush()
        await self.runner.client.generator.aclose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _execute(
        self, run_id: str, template: Template, logo: LogoRef, generation: int
    ) -> Job:
        outcome = await self._run_job(run_id, template, logo)
        if outcome.escalated and self._is_current(run_id, template.id, generation):
            self._escalate(run_id, template, logo, outcome, generation=generation)
        return outcome.job

    async def _regenerate_single(
        self, run_id: str, template: Template, logo: LogoRef, generation: int
    ) -> Job:
        outcome = await self._run_job(run_id, template, logo)
        job = outcome.job
        if outcome.escalated:
            if self.surface_single_item_errors:
                job = Job(
                    template_id=template.id,
                    status=JobStatus.ERROR,
                    error_detail=READY_TO_RETRY,
                    attempt=outcome.job.attempt,
                )
            elif self._is_current(run_id, template.id, generation):
                self._escalate(run_id, template, logo, outcome, generation=generation)
        self._apply(run_id, template.id, job, generation=generation)
        return job

    async def _run_job(self, run_id: str, template: Template, logo: LogoRef) -> JobOutcome:
        """Run the inline pipeline; an unexpected crash escalates like an exhausted job."""

        try:
            return await self.runner.run(template, logo)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - a crashed job still needs a retry path
            self._logger.exception(
                "orchestrator.job.crashed",
                extra={"run_id": run_id, "template_id": template.id},
            )
            error = GenerationError(f"{exc.__class__.__name__}: {exc}")
            return JobOutcome(
                job=Job.loading(template.id, error_detail=error.message),
                escalated=True,
                error=error,
            )

    def _escalate(
        self,
        run_id: str,
        template: Template,
        logo: LogoRef,
        outcome: JobOutcome,
        *,
        generation: int = 0,
        attempts: int = 0,
    ) -> bool:
        item = RetryQueueItem(
            run_id=run_id,
            template=template,
            logo=logo,
            retry=self._retry_from_queue,
            attempts=attempts,
            last_error=outcome.error.message if outcome.error else None,
            generation=generation,
        )
        queued = self.retry_queue.enqueue(item)
        if not queued:
            self._logger.warning(
                "orchestrator.escalation.dropped",
                extra={"run_id": run_id, "template_id": template.id},
            )
        return queued

    async def _retry_from_queue(self, item: RetryQueueItem) -> None:
        if not self._is_current(item.run_id, item.template.id, item.generation):
            self._logger.info(
                "orchestrator.retry_queue.superseded",
                extra={"run_id": item.run_id, "template_id": item.template.id},
            )
            return
        outcome = await self._run_job(item.run_id, item.template, item.logo)
        if not self._is_current(item.run_id, item.template.id, item.generation):
            return
        if outcome.escalated:
            item.last_error = outcome.error.message if outcome.error else None
            self.retry_queue.enqueue(item)
            return
        self._logger.info(
            "orchestrator.retry_queue.recovered",
            extra={"run_id": item.run_id, "template_id": item.template.id, "attempts": item.attempts},
        )
        self._apply(item.run_id, item.template.id, outcome.job, generation=item.generation)

    def _apply(
        self, run_id: str, template_id: str, job: Job, *, generation: int | None = None
    ) -> None:
        if generation is not None and not self._is_current(run_id, template_id, generation):
            self._logger.info(
                "orchestrator.apply.superseded",
                extra={"run_id": run_id, "template_id": template_id, "generation": generation},
            )
            return
        if self.history.update_job(run_id, template_id, job):
            self._emit(
                OrchestratorEvent(
                    OrchestratorEventKind.JOB_UPDATED,
                    run_id=run_id,
                    template_id=template_id,
                    job=job,
                    progress=self._progress.get(run_id),
                )
            )

    # every manual regenerate bumps the template's generation; older attempts
    # finishing afterwards are discarded
    def _generation(self, run_id: str, template_id: str) -> int:
        return self._generations.get(run_id, {}).get(template_id, 0)

    def _next_generation(self, run_id: str, template_id: str) -> int:
        per_run = self._generations.setdefault(run_id, {})
        per_run[template_id] = per_run.get(template_id, 0) + 1
        return per_run[template_id]

    def _is_current(self, run_id: str, template_id: str, generation: int) -> bool:
        return self._generation(run_id, template_id) == generation

    def _forget_evicted_runs(self) -> None:
        retained = {run.id for run in self.history.history()}
        for run_id in [key for key in self._progress if key not in retained]:
            del self._progress[run_id]
        for run_id in [key for key in self._generations if key not in retained]:
            del self._generations[run_id]

    async def _archive_run(self, run: GenerationRun) -> None:
        identity = self.identity.current
        if self.archive is None or identity is None:
            return
        try:
            await self.archive.save_run(identity, run)
        except Exception:  # noqa: BLE001 - archiving must never affect a run
            self._logger.exception("orchestrator.archive.failed", extra={"run_id": run.id})

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("orchestrator.task.failed", exc_info=exc)

    def _emit(self, event: OrchestratorEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001 - one listener must not break the engine
                self._logger.exception("orchestrator.listener.failed", extra={"kind": event.kind.value})


__all__ = [
    "BulkRegenerateResult",
    "GenerationOrchestrator",
    "OrchestratorEvent",
    "OrchestratorEventKind",
    "READY_TO_RETRY",
    "limit_notice",
]
