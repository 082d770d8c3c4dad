"""Domain models shared by the orchestration engine.

The dataclasses below are plain data: the live session, every history entry
and the durable store all use them, and none of them carry a reactive binding.
A :class:`GenerationRun` always holds exactly one :class:`Job` per catalog
template so that a complete grid can be rendered before any generation has
finished.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Iterable, Mapping
from uuid import uuid4


class JobStatus(StrEnum):
    """Lifecycle states of a single template generation.

    ``idle`` is only valid before a run starts. ``error`` is never produced by
    a run; it exists for the optional "ready to retry" affordance of manual
    single-item regeneration.
    """

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(slots=True)
class Job:
    """Snapshot of one (template x logo) unit of work."""

    template_id: str
    status: JobStatus = JobStatus.IDLE
    image_url: str | None = None
    error_detail: str | None = None
    attempt: int = 0

    def __post_init__(self) -> None:
        if self.status == JobStatus.SUCCESS and not self.image_url:
            raise ValueError("successful job requires an image_url")
        if self.status != JobStatus.SUCCESS and self.image_url is not None:
            raise ValueError("image_url is only allowed on successful jobs")

    @classmethod
    def loading(cls, template_id: str, *, attempt: int = 0, error_detail: str | None = None) -> "Job":
        return cls(
            template_id=template_id,
            status=JobStatus.LOADING,
            attempt=attempt,
            error_detail=error_detail,
        )

    @classmethod
    def succeeded(cls, template_id: str, image_url: str, *, attempt: int) -> "Job":
        return cls(
            template_id=template_id,
            status=JobStatus.SUCCESS,
            image_url=image_url,
            attempt=attempt,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "status": self.status.value,
            "image_url": self.image_url,
            "error_detail": self.error_detail,
            "attempt": self.attempt,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Job":
        return cls(
            template_id=str(data["template_id"]),
            status=JobStatus(data.get("status", JobStatus.IDLE)),
            image_url=data.get("image_url"),
            error_detail=data.get("error_detail"),
            attempt=int(data.get("attempt", 0)),
        )


@dataclass(frozen=True, slots=True)
class LogoRef:
    """Uploaded logo bytes (base64) plus declared name and mime type."""

    data_base64: str
    mime_type: str
    name: str

    @classmethod
    def from_bytes(cls, payload: bytes, *, mime_type: str, name: str) -> "LogoRef":
        return cls(
            data_base64=base64.b64encode(payload).decode("ascii"),
            mime_type=mime_type,
            name=name,
        )

    def raw_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.data_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("logo payload is not valid base64") from exc

    def to_dict(self) -> dict[str, str]:
        return {
            "data_base64": self.data_base64,
            "mime_type": self.mime_type,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogoRef":
        return cls(
            data_base64=str(data["data_base64"]),
            mime_type=str(data["mime_type"]),
            name=str(data.get("name", "")),
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id(created_at: datetime) -> str:
    """Return a time-sortable run identifier."""

    millis = int(created_at.timestamp() * 1000)
    return f"gen_{millis:013d}_{uuid4().hex[:6]}"


@dataclass(slots=True)
class GenerationRun:
    """One full generation pass over the catalog for one logo."""

    id: str
    logo: LogoRef
    results: dict[str, Job]
    created_at: datetime

    @classmethod
    def start(
        cls,
        logo: LogoRef,
        template_ids: Iterable[str],
        *,
        created_at: datetime | None = None,
        status: JobStatus = JobStatus.LOADING,
    ) -> "GenerationRun":
        started = created_at or _utcnow()
        results = {
            template_id: Job(template_id=template_id, status=status)
            for template_id in template_ids
        }
        return cls(id=new_run_id(started), logo=logo, results=results, created_at=started)

    def successful_images(self) -> dict[str, str]:
        return {
            template_id: job.image_url
            for template_id, job in self.results.items()
            if job.status == JobStatus.SUCCESS and job.image_url
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "logo": self.logo.to_dict(),
            "results": {key: job.to_dict() for key, job in self.results.items()},
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GenerationRun":
        raw_results = data["results"]
        if not isinstance(raw_results, Mapping):
            raise ValueError("results must be a mapping")
        created_at = datetime.fromisoformat(str(data["created_at"]))
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            logo=LogoRef.from_dict(data["logo"]),
            results={str(key): Job.from_dict(value) for key, value in raw_results.items()},
            created_at=created_at,
        )


@dataclass(slots=True)
class LiveSessionSnapshot:
    """Live (logo, run) pair captured while a past run is displayed.

    The snapshot keeps a reference to the live :class:`GenerationRun` rather
    than a copy, so job completions that land while history is displayed are
    visible once the live view is restored.
    """

    logo: LogoRef | None
    run: GenerationRun | None

    @property
    def results(self) -> dict[str, Job]:
        return self.run.results if self.run is not None else {}


@dataclass(frozen=True, slots=True)
class QuotaStatus:
    """Regeneration counter as reported by the quota service."""

    used: int
    maximum: int

    @property
    def can_regenerate(self) -> bool:
        return self.used < self.maximum


@dataclass(frozen=True, slots=True)
class QuotaCheck:
    """Result of a quota gate check."""

    can_proceed: bool
    used: int
    maximum: int


@dataclass(slots=True)
class BatchProgress:
    """Incremental progress of a running generation pass."""

    completed: int
    total: int
    batch_index: int
    batch_count: int
    last_template_id: str | None = None


__all__ = [
    "BatchProgress",
    "GenerationRun",
    "Job",
    "JobStatus",
    "LiveSessionSnapshot",
    "LogoRef",
    "QuotaCheck",
    "QuotaStatus",
    "new_run_id",
]
