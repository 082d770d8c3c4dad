"""Service composition helpers."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..catalog.catalog import TemplateCatalog
from ..config import EngineSettings
from ..db.db_init import create_db_engine, create_session_factory, init_db
from ..generation.batch_scheduler import BatchScheduler
from ..generation.generator_client import GeneratorClient
from ..generation.image_probe import ImageProbe
from ..generation.job_runner import JobRunner
from ..generation.retry_policy import RetryPolicy
from ..generation.retry_queue import BackgroundRetryQueue
from ..history.history_manager import SessionHistoryManager
from ..history.history_repository import SqlHistoryRepository
from ..identity.identity_gate import IdentityGate
from ..orchestrator.orchestrator import GenerationOrchestrator
from ..providers.providers_base import ImageGenerator
from ..providers.providers_factory import create_generator
from ..quota.quota_gate import QuotaGate
from ..quota.quota_service import HttpQuotaService, QuotaService, SqlQuotaService
from ..results.result_archive import ResultArchive


@dataclass(slots=True)
class EngineContainer:
    settings: EngineSettings
    engine: Engine
    session_factory: sessionmaker[Session]
    orchestrator: GenerationOrchestrator


def build_retry_policy(settings: EngineSettings) -> RetryPolicy:
    return RetryPolicy(
        base_delay_seconds=settings.retry_base_delay_seconds,
        max_delay_seconds=settings.retry_max_delay_seconds,
        max_attempts=settings.retry_max_attempts,
        rate_limit_delay_seconds=settings.rate_limit_delay_seconds,
        rate_limit_max_attempts=settings.rate_limit_max_attempts,
    )


def build_quota_service(
    settings: EngineSettings, session_factory: sessionmaker[Session]
) -> QuotaService:
    if settings.quota_service_url:
        return HttpQuotaService(settings.quota_service_url)
    return SqlQuotaService(
        session_factory,
        default_max_regenerations=settings.quota_default_max_regenerations,
    )


def build_container(
    settings: EngineSettings | None = None,
    *,
    generator: ImageGenerator | None = None,
    quota_service: QuotaService | None = None,
    catalog: TemplateCatalog | None = None,
) -> EngineContainer:
    """Wire the orchestrator and its collaborators from ``settings``."""

    cfg = settings or EngineSettings.build_default()
    engine = create_db_engine(cfg.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    catalog = catalog or TemplateCatalog()
    history = SessionHistoryManager(
        catalog=catalog,
        repository=SqlHistoryRepository(
            session_factory, max_payload_bytes=cfg.history_max_payload_bytes
        ),
        max_runs=cfg.history_max_runs,
        persist_max_runs=cfg.history_persist_max_runs,
        degraded_max_runs=cfg.history_degraded_max_runs,
        storage_key=cfg.history_storage_key,
    )
    history.load()

    generator = generator or create_generator(cfg.generator_provider, settings=cfg)
    client = GeneratorClient(
        generator=generator,
        probe=ImageProbe(timeout_seconds=cfg.image_validation_timeout_seconds),
    )
    runner = JobRunner(client=client, policy=build_retry_policy(cfg))
    retry_queue = BackgroundRetryQueue(
        max_size=cfg.retry_queue_max_size,
        interval_seconds=cfg.retry_queue_interval_seconds,
        concurrency=cfg.retry_queue_concurrency,
        stale_after_seconds=cfg.retry_queue_stale_after_seconds,
    )
    quota_gate = QuotaGate(quota_service or build_quota_service(cfg, session_factory))
    archive = ResultArchive(cfg.results_root) if cfg.results_root is not None else None

    orchestrator = GenerationOrchestrator(
        catalog=catalog,
        history=history,
        runner=runner,
        scheduler=BatchScheduler(batch_size=cfg.batch_size),
        retry_queue=retry_queue,
        quota_gate=quota_gate,
        identity=IdentityGate(),
        archive=archive,
        surface_single_item_errors=cfg.surface_single_item_errors,
    )
    return EngineContainer(
        settings=cfg,
        engine=engine,
        session_factory=session_factory,
        orchestrator=orchestrator,
    )


__all__ = ["EngineContainer", "build_container", "build_quota_service", "build_retry_policy"]
