from __future__ import annotations

import asyncio
from typing import Callable

import pytest
from sqlalchemy.orm import Session, sessionmaker

from src.surfacegen.catalog.catalog import Template, TemplateCatalog
from src.surfacegen.db.db_init import create_db_engine, create_session_factory, init_db
from src.surfacegen.domain.models import LogoRef
from tests.mocks.generators import png_bytes


def make_catalog(size: int) -> TemplateCatalog:
    return TemplateCatalog(
        Template(
            id=f"t{index}",
            name=f"Template {index}",
            category="Test" if index % 2 else "Other",
            prompt=f"prompt-{index}",
        )
        for index in range(1, size + 1)
    )


class SleepRecorder:
    """Instant replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def catalog() -> TemplateCatalog:
    return make_catalog(3)


@pytest.fixture
def logo() -> LogoRef:
    return LogoRef.from_bytes(png_bytes((10, 120, 240)), mime_type="image/png", name="logo.png")


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    engine = create_db_engine("sqlite:///:memory:")
    init_db(engine)
    return create_session_factory(engine)


@pytest.fixture
def catalog_factory() -> Callable[[int], TemplateCatalog]:
    return make_catalog
