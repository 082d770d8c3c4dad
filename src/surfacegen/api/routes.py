"""HTTP routes driving the generation orchestrator."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile, status

from ..catalog.catalog import TemplateCatalog
from ..domain.models import JobStatus
from ..orchestrator.orchestrator import GenerationOrchestrator
from .schemas import (
    CategoryModel,
    HistoryEntryModel,
    IdentityRequest,
    JobModel,
    ProgressModel,
    RegenerateAllResponse,
    RetryQueueItemModel,
    RetryQueueModel,
    RunModel,
    SavedResultModel,
    SessionModel,
)
from .validation import LogoUploadValidator

router = APIRouter(prefix="/api", tags=["generation"])
logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    try:
        return request.app.state.orchestrator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("GenerationOrchestrator is not configured") from exc


def get_upload_validator(request: Request) -> LogoUploadValidator:
    try:
        return request.app.state.upload_validator  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover
        raise RuntimeError("LogoUploadValidator is not configured") from exc


def _session(orchestrator: GenerationOrchestrator) -> SessionModel:
    run = orchestrator.history.current_view()
    progress = orchestrator.progress(run.id) if run is not None else None
    return SessionModel(
        run_id=run.id if run is not None else None,
        is_generating=orchestrator.is_generating,
        is_viewing_history=orchestrator.is_viewing_history,
        identity_verified=orchestrator.identity.is_verified,
        results={key: JobModel.from_job(job) for key, job in orchestrator.current_results.items()},
        progress=ProgressModel.from_progress(progress) if progress is not None else None,
    )


@router.get("/catalog", response_model=list[CategoryModel])
def read_catalog(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[CategoryModel]:
    catalog: TemplateCatalog = orchestrator.catalog
    return [CategoryModel.from_category(category) for category in catalog.categories()]


@router.post("/runs", response_model=RunModel, status_code=status.HTTP_202_ACCEPTED)
async def start_run(
    logo: UploadFile = File(...),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    validator: LogoUploadValidator = Depends(get_upload_validator),
) -> RunModel:
    logo_ref = await validator.read_logo(logo)
    run = orchestrator.start_all(logo_ref)
    return RunModel.from_run(run)


@router.get("/session", response_model=SessionModel)
def read_session(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> SessionModel:
    return _session(orchestrator)


@router.put("/session/identity", response_model=SessionModel)
def set_identity(
    payload: IdentityRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> SessionModel:
    orchestrator.identity.verify(payload.email)
    return _session(orchestrator)


@router.delete("/session/identity", response_model=SessionModel)
def clear_identity(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> SessionModel:
    orchestrator.identity.clear()
    return _session(orchestrator)


@router.post(
    "/session/templates/{template_id}/regenerate",
    response_model=JobModel,
    status_code=status.HTTP_202_ACCEPTED,
)
async def regenerate_template(
    template_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> JobModel:
    job = await orchestrator.regenerate_one(template_id, wait=False)
    return JobModel.from_job(job)


@router.post("/session/regenerate-all", response_model=RegenerateAllResponse)
async def regenerate_all(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> RegenerateAllResponse:
    result = await orchestrator.regenerate_all(wait=False)
    return RegenerateAllResponse(
        started=result.started,
        notice=result.notice,
        run_id=result.run_id,
        used=result.used,
        maximum=result.maximum,
    )


@router.post("/session/save", response_model=list[SavedResultModel])
async def save_results(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[SavedResultModel]:
    saved = await orchestrator.save_current_results()
    return [
        SavedResultModel(
            template_id=item.template_id,
            path=item.path.as_posix(),
            checksum=item.checksum,
            size_bytes=item.size_bytes,
        )
        for item in saved
    ]


@router.get("/history", response_model=list[HistoryEntryModel])
def read_history(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[HistoryEntryModel]:
    return [
        HistoryEntryModel(
            id=run.id,
            logo_name=run.logo.name,
            created_at=run.created_at,
            success_count=sum(1 for job in run.results.values() if job.status == JobStatus.SUCCESS),
            total=len(run.results),
        )
        for run in orchestrator.history.history()
    ]


@router.post("/history/{run_id}/view", response_model=RunModel)
def view_history(
    run_id: str,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> RunModel:
    return RunModel.from_run(orchestrator.view_history(run_id))


@router.post("/history/back", response_model=SessionModel)
def back_to_current(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> SessionModel:
    orchestrator.back_to_current()
    return _session(orchestrator)


@router.get("/retry-queue", response_model=RetryQueueModel)
def read_retry_queue(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> RetryQueueModel:
    queue = orchestrator.retry_queue
    return RetryQueueModel(
        size=queue.size,
        max_size=queue.max_size,
        running=queue.is_running,
        items=[
            RetryQueueItemModel(
                id=item.id,
                run_id=item.run_id,
                template_id=item.template.id,
                attempts=item.attempts,
                created_at=item.created_at,
            )
            for item in queue.items()
        ],
    )
