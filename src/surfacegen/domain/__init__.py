"""Domain entities of the generation engine."""

from .models import (
    BatchProgress,
    GenerationRun,
    Job,
    JobStatus,
    LiveSessionSnapshot,
    LogoRef,
    QuotaCheck,
    QuotaStatus,
)

__all__ = [
    "BatchProgress",
    "GenerationRun",
    "Job",
    "JobStatus",
    "LiveSessionSnapshot",
    "LogoRef",
    "QuotaCheck",
    "QuotaStatus",
]
