"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base declarative class."""


class HistoryRecordModel(Base):
    """Serialized generation history stored under a single key."""

    __tablename__ = "generation_history"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class QuotaRecordModel(Base):
    """Per-identity regeneration counter."""

    __tablename__ = "regeneration_quota"

    identity: Mapped[str] = mapped_column(String(320), primary_key=True)
    regeneration_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_regenerations: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


__all__ = ["Base", "HistoryRecordModel", "QuotaRecordModel"]
