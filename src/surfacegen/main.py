"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .api.errors import register_error_handlers
from .api.routes import router
from .api.validation import LogoUploadValidator
from .config import EngineSettings
from .logging import configure_logging
from .orchestrator.orchestrator import GenerationOrchestrator
from .services.container import build_container


def create_app(
    settings: EngineSettings | None = None,
    *,
    orchestrator: GenerationOrchestrator | None = None,
) -> FastAPI:
    """Build FastAPI instance with the orchestrator attached to ``app.state``."""
    configure_logging()
    cfg = settings or EngineSettings.build_default()
    engine_orchestrator = orchestrator or build_container(cfg).orchestrator

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await engine_orchestrator.aclose()

    app = FastAPI(title="SurfaceGen", lifespan=lifespan)
    app.state.orchestrator = engine_orchestrator
    app.state.upload_validator = LogoUploadValidator(
        allowed_content_types=tuple(cfg.allowed_logo_content_types),
        max_bytes=cfg.logo_max_bytes,
    )
    register_error_handlers(app)
    app.include_router(router)
    return app
