"""Engine configuration.

Defaults reproduce the production tuning of the generation engine: a 2s base
backoff capped at 60s over ten inline attempts, a two-attempt fast path for
rate limits, a background retry queue of fifty items ticking every five
seconds and batches of ten templates. Every value can be overridden with a
``SURFACEGEN_`` prefixed environment variable.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Pydantic settings container for the orchestration engine."""

    model_config = SettingsConfigDict(env_prefix="SURFACEGEN_")

    retry_base_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Base delay of the exponential backoff schedule.",
    )
    retry_max_delay_seconds: float = Field(
        default=60.0,
        ge=0.0,
        description="Ceiling applied to any computed backoff delay.",
    )
    retry_max_attempts: int = Field(
        default=10,
        ge=1,
        description="Inline attempts before a job is escalated to the retry queue.",
    )
    rate_limit_delay_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Fixed delay used after a rate-limit failure.",
    )
    rate_limit_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Rate-limited attempts allowed before escalation.",
    )
    retry_queue_max_size: int = Field(default=50, ge=1)
    retry_queue_interval_seconds: float = Field(default=5.0, gt=0.0)
    retry_queue_concurrency: int = Field(default=3, ge=1)
    retry_queue_stale_after_seconds: float = Field(
        default=30 * 60,
        gt=0.0,
        description="Queued jobs older than this are evicted without another attempt.",
    )
    batch_size: int = Field(default=10, ge=1)
    image_validation_timeout_seconds: float = Field(default=10.0, gt=0.0)
    history_max_runs: int = Field(default=15, ge=1)
    history_persist_max_runs: int = Field(default=10, ge=1)
    history_degraded_max_runs: int = Field(default=5, ge=1)
    history_storage_key: str = Field(default="surfacegen-generation-history", min_length=1)
    history_max_payload_bytes: int | None = Field(
        default=None,
        ge=1,
        description="Optional storage quota for a persisted history payload.",
    )
    surface_single_item_errors: bool = Field(
        default=False,
        description="Show exhausted single-item regenerations as 'ready to retry'.",
    )
    generator_provider: str = Field(default="gemini")
    gemini_api_keys: list[str] = Field(default_factory=list)
    gemini_model: str = Field(default="gemini-2.5-flash-image")
    gemini_api_url_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta"
    )
    generator_timeout_seconds: float = Field(default=60.0, gt=0.0)
    quota_service_url: str | None = Field(
        default=None,
        description="Remote quota service; the SQL-backed service is used when unset.",
    )
    quota_default_max_regenerations: int = Field(default=3, ge=0)
    database_url: str = Field(default="sqlite:///surfacegen.db")
    results_root: Path | None = Field(
        default=None,
        description="Directory where finished runs are archived per identity.",
    )
    allowed_logo_content_types: tuple[str, ...] = ("image/png", "image/jpeg", "image/webp")
    logo_max_bytes: int = Field(default=15 * 1024 * 1024, ge=1)

    @classmethod
    def build_default(cls) -> "EngineSettings":
        """Construct configuration from the environment."""

        return cls()


__all__ = ["EngineSettings"]
