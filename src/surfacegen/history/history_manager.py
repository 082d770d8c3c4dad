"""Live session and bounded run history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from ..catalog.catalog import TemplateCatalog
from ..domain.models import GenerationRun, Job, JobStatus, LiveSessionSnapshot, LogoRef
from ..exceptions import PersistenceError, RunNotFoundError
from .history_repository import HistoryRepository

logger = logging.getLogger(__name__)


class SessionHistoryManager:
    """Own the live run, the history list and the view switch between them.

    The live run is the same object as its history entry, so job updates
    applied while a past run is displayed are still visible on return to the
    live view. Every mutation locates its target run by id and touches only
    that run's ``results``. The list itself is reassigned only on prepend and
    eviction.

    Inside a running event loop mutations are persisted by a single writer
    task that hands the blocking store call to a worker thread. Writes are
    coalesced, so only the newest pending snapshot is stored and an older
    snapshot never lands after a newer one. Without a loop the store is
    written inline.
    """

    def __init__(
        self,
        *,
        catalog: TemplateCatalog,
        repository: HistoryRepository | None = None,
        max_runs: int = 15,
        persist_max_runs: int = 10,
        degraded_max_runs: int = 5,
        storage_key: str = "surfacegen-generation-history",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_runs < 1:
            raise ValueError("max_runs must be at least 1")
        self.catalog = catalog
        self.repository = repository
        self.max_runs = max_runs
        self.persist_max_runs = persist_max_runs
        self.degraded_max_runs = degraded_max_runs
        self.storage_key = storage_key
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._runs: list[GenerationRun] = []
        self._live_run: GenerationRun | None = None
        self._live_logo: LogoRef | None = None
        self._viewing_run_id: str | None = None
        self._snapshot: LiveSessionSnapshot | None = None
        self._pending: list[dict[str, Any]] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def live_run(self) -> GenerationRun | None:
        return self._live_run

    @property
    def live_logo(self) -> LogoRef | None:
        return self._live_logo

    @property
    def is_viewing_history(self) -> bool:
        return self._viewing_run_id is not None

    @property
    def viewing_run_id(self) -> str | None:
        return self._viewing_run_id

    def history(self) -> list[GenerationRun]:
        """Runs newest-first by ``created_at``."""

        return sorted(self._runs, key=lambda run: run.created_at, reverse=True)

    def get_run(self, run_id: str) -> GenerationRun | None:
        for run in self._runs:
            if run.id == run_id:
                return run
        return None

    def current_view(self) -> GenerationRun | None:
        if self._viewing_run_id is not None:
            return self.get_run(self._viewing_run_id)
        return self._live_run

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def start_run(self, logo: LogoRef) -> GenerationRun:
        run = GenerationRun.start(logo, self.catalog.ids(), created_at=self._clock())
        runs = [run, *self._runs]
        evicted = runs[self.max_runs :]
        self._runs = runs[: self.max_runs]
        self._live_run = run
        self._live_logo = logo
        self._viewing_run_id = None
        self._snapshot = None
        self._logger.info(
            "history.run.started",
            extra={"run_id": run.id, "history_size": len(self._runs), "evicted": len(evicted)},
        )
        self._schedule_persist()
        return run

    def update_job(self, run_id: str, template_id: str, job: Job) -> bool:
        """Apply ``job`` to ``run_id``; evicted runs and unknown templates are ignored."""

        run = self.get_run(run_id)
        if run is None:
            self._logger.info(
                "history.update.run_missing",
                extra={"run_id": run_id, "template_id": template_id},
            )
            return False
        if template_id not in run.results:
            self._logger.warning(
                "history.update.template_missing",
                extra={"run_id": run_id, "template_id": template_id},
            )
            return False
        run.results[template_id] = job
        self._schedule_persist()
        return True

    def snapshot_live_and_switch_to(self, run_id: str) -> GenerationRun:
        run = self.get_run(run_id)
        if run is None:
            raise RunNotFoundError(f"Run '{run_id}' is not in history")
        if self._live_run is not None and run.id == self._live_run.id:
            self.restore_live()
            return run
        if self._viewing_run_id is None:
            self._snapshot = LiveSessionSnapshot(logo=self._live_logo, run=self._live_run)
        self._viewing_run_id = run.id
        self._logger.info("history.view.switched", extra={"run_id": run.id})
        return run

    def restore_live(self) -> LiveSessionSnapshot:
        snapshot = self._snapshot or LiveSessionSnapshot(logo=self._live_logo, run=self._live_run)
        self._live_logo = snapshot.logo
        self._live_run = snapshot.run
        self._viewing_run_id = None
        self._snapshot = None
        self._logger.info(
            "history.view.live",
            extra={"run_id": snapshot.run.id if snapshot.run else None},
        )
        return snapshot

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def persist(self) -> bool:
        """Store the capped history; shrink once on failure, then give up."""

        if self.repository is None:
            return True
        return self._write(self._payload())

    async def flush(self) -> None:
        """Wait until every scheduled write has reached the store."""

        while self._writer is not None and not self._writer.done():
            await asyncio.shield(self._writer)

    def _payload(self) -> list[dict[str, Any]]:
        return [run.to_dict() for run in self.history()]

    def _schedule_persist(self) -> None:
        if self.repository is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.persist()
            return
        self._pending = self._payload()
        if self._writer is None or self._writer.done():
            self._writer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            payload, self._pending = self._pending, None
            try:
                await asyncio.to_thread(self._write, payload)
            except Exception:  # noqa: BLE001 - persistence must never stop the engine
                self._logger.exception("history.persist.crashed")

    def _write(self, payload: list[dict[str, Any]]) -> bool:
        repository = self.repository
        if repository is None:
            return True
        try:
            repository.put(self.storage_key, payload, self.persist_max_runs)
            return True
        except PersistenceError as exc:
            self._logger.warning(
                "history.persist.degraded",
                extra={"error": str(exc), "max_runs": self.degraded_max_runs},
            )
        try:
            repository.put(self.storage_key, payload, self.degraded_max_runs)
            return True
        except PersistenceError as exc:
            self._logger.error("history.persist.failed", extra={"error": str(exc)})
            return False

    def load(self) -> int:
        """Replace in-memory history with the stored one; corrupt data is discarded."""

        if self.repository is None:
            return 0
        try:
            stored = self.repository.get(self.storage_key)
        except PersistenceError as exc:
            self._logger.warning("history.load.discarded", extra={"error": str(exc)})
            stored = []
        runs: list[GenerationRun] = []
        for entry in stored:
            run = self._restore_run(entry)
            if run is not None:
                runs.append(run)
        runs.sort(key=lambda item: item.created_at, reverse=True)
        self._runs = runs[: self.persist_max_runs]
        self._logger.info("history.loaded", extra={"runs": len(self._runs)})
        return len(self._runs)

    def _restore_run(self, entry: Any) -> GenerationRun | None:
        try:
            run = GenerationRun.from_dict(entry)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self._logger.warning("history.load.corrupt_entry", extra={"error": str(exc)})
            return None
        # keep exactly one job per catalog template
        results: dict[str, Job] = {}
        for template_id in self.catalog.ids():
            job = run.results.get(template_id)
            results[template_id] = job if job is not None else Job(template_id, JobStatus.IDLE)
        run.results = results
        return run


__all__ = ["SessionHistoryManager"]
