"""Pydantic schemas for the engine HTTP API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..catalog.catalog import TemplateCategory
from ..domain.models import BatchProgress, GenerationRun, Job


class TemplateModel(BaseModel):
    id: str
    name: str
    category: str


class CategoryModel(BaseModel):
    name: str
    templates: list[TemplateModel]

    @classmethod
    def from_category(cls, category: TemplateCategory) -> "CategoryModel":
        return cls(
            name=category.name,
            templates=[
                TemplateModel(id=item.id, name=item.name, category=item.category)
                for item in category.templates
            ],
        )


class JobModel(BaseModel):
    template_id: str
    status: str
    image_url: str | None = None
    attempt: int = 0

    @classmethod
    def from_job(cls, job: Job) -> "JobModel":
        # error_detail is internal diagnostics and never leaves the engine
        return cls(
            template_id=job.template_id,
            status=job.status.value,
            image_url=job.image_url,
            attempt=job.attempt,
        )


class ProgressModel(BaseModel):
    completed: int
    total: int
    batch_index: int
    batch_count: int

    @classmethod
    def from_progress(cls, progress: BatchProgress) -> "ProgressModel":
        return cls(
            completed=progress.completed,
            total=progress.total,
            batch_index=progress.batch_index,
            batch_count=progress.batch_count,
        )


class RunModel(BaseModel):
    id: str
    logo_name: str
    created_at: datetime
    results: dict[str, JobModel]

    @classmethod
    def from_run(cls, run: GenerationRun) -> "RunModel":
        return cls(
            id=run.id,
            logo_name=run.logo.name,
            created_at=run.created_at,
            results={key: JobModel.from_job(job) for key, job in run.results.items()},
        )


class HistoryEntryModel(BaseModel):
    id: str
    logo_name: str
    created_at: datetime
    success_count: int
    total: int


class SessionModel(BaseModel):
    run_id: str | None = None
    is_generating: bool = False
    is_viewing_history: bool = False
    identity_verified: bool = False
    results: dict[str, JobModel] = Field(default_factory=dict)
    progress: ProgressModel | None = None


class IdentityRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class RegenerateAllResponse(BaseModel):
    started: bool
    notice: str | None = None
    run_id: str | None = None
    used: int | None = None
    maximum: int | None = None


class SavedResultModel(BaseModel):
    template_id: str
    path: str
    checksum: str
    size_bytes: int


class RetryQueueItemModel(BaseModel):
    id: str
    run_id: str
    template_id: str
    attempts: int
    created_at: datetime | None = None


class RetryQueueModel(BaseModel):
    size: int
    max_size: int
    running: bool
    items: list[RetryQueueItemModel]
