"""Regeneration quota services."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import update
from sqlalchemy.orm import Session

from ..db.db_models import QuotaRecordModel
from ..domain.models import QuotaStatus
from ..exceptions import (
    PersistenceError,
    QuotaExceededError,
    QuotaServiceError,
    handle_sqlalchemy_errors,
)

logger = logging.getLogger(__name__)


def normalize_identity(identity: str) -> str:
    return identity.strip().lower()


class QuotaService(ABC):
    """Remote per-identity regeneration counter."""

    @abstractmethod
    async def can_regenerate(self, identity: str) -> QuotaStatus:
        """Return the current counter for ``identity``."""

    @abstractmethod
    async def consume_regeneration(self, identity: str) -> QuotaStatus:
        """Advance the counter; raise :class:`QuotaExceededError` at the ceiling."""


class HttpQuotaService(QuotaService):
    """Client for the verification backend's regeneration endpoints."""

    CHECK_PATH = "/api/check-regeneration-limit"
    CONSUME_PATH = "/api/regenerate-images"

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._logger = logging.getLogger(__name__)

    async def can_regenerate(self, identity: str) -> QuotaStatus:
        response = await self._post(self.CHECK_PATH, identity)
        data = self._json(response)
        if response.status_code != 200:
            raise QuotaServiceError(self._error_message(data, response))
        return self._status(data)

    async def consume_regeneration(self, identity: str) -> QuotaStatus:
        response = await self._post(self.CONSUME_PATH, identity)
        data = self._json(response)
        if response.status_code == 403:
            status = self._status(data, strict=False)
            raise QuotaExceededError(status.used, status.maximum)
        if response.status_code != 200:
            raise QuotaServiceError(self._error_message(data, response))
        return self._status(data)

    async def _post(self, path: str, identity: str) -> httpx.Response:
        url = f"{self.base_url}{path}"
        payload = {"email": normalize_identity(identity)}
        try:
            if self._client is not None:
                return await self._client.post(url, json=payload)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            self._logger.error("quota.http.unreachable", extra={"path": path})
            raise QuotaServiceError(f"Quota service unreachable: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _error_message(data: dict[str, Any], response: httpx.Response) -> str:
        detail = data.get("error") or data.get("message") or response.text
        return f"Quota service error (status={response.status_code}): {detail}"

    @staticmethod
    def _status(data: dict[str, Any], *, strict: bool = True) -> QuotaStatus:
        try:
            return QuotaStatus(
                used=int(data["regenerationCount"]),
                maximum=int(data["maxRegenerations"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            if not strict:
                return QuotaStatus(used=0, maximum=0)
            raise QuotaServiceError("Quota service returned an unexpected payload") from exc


class SqlQuotaService(QuotaService):
    """Quota counters stored in the local database.

    ``consume_regeneration`` is a single conditional ``UPDATE`` so two
    concurrent consumers can never push the counter past its ceiling.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        default_max_regenerations: int = 3,
    ) -> None:
        self._session_factory = session_factory
        self.default_max_regenerations = default_max_regenerations

    async def can_regenerate(self, identity: str) -> QuotaStatus:
        try:
            return await asyncio.to_thread(self._read, normalize_identity(identity))
        except PersistenceError as exc:
            logger.error("quota.sql.unavailable", extra={"operation": "check", "error": str(exc)})
            raise QuotaServiceError(f"Quota store is unavailable: {exc}") from exc

    async def consume_regeneration(self, identity: str) -> QuotaStatus:
        try:
            return await asyncio.to_thread(self._consume, normalize_identity(identity))
        except PersistenceError as exc:
            logger.error("quota.sql.unavailable", extra={"operation": "consume", "error": str(exc)})
            raise QuotaServiceError(f"Quota store is unavailable: {exc}") from exc

    def set_limit(self, identity: str, max_regenerations: int) -> QuotaStatus:
        key = normalize_identity(identity)
        with handle_sqlalchemy_errors(entity="quota"), self._session_factory() as session:
            record = self._get_or_create(session, key)
            record.max_regenerations = max_regenerations
            record.updated_at = datetime.now(timezone.utc)
            session.commit()
            return QuotaStatus(used=record.regeneration_count, maximum=record.max_regenerations)

    def _read(self, key: str) -> QuotaStatus:
        with handle_sqlalchemy_errors(entity="quota"), self._session_factory() as session:
            record = self._get_or_create(session, key)
            session.commit()
            return QuotaStatus(used=record.regeneration_count, maximum=record.max_regenerations)

    def _consume(self, key: str) -> QuotaStatus:
        with handle_sqlalchemy_errors(entity="quota"), self._session_factory() as session:
            self._get_or_create(session, key)
            session.commit()
            result = session.execute(
                update(QuotaRecordModel)
                .where(
                    QuotaRecordModel.identity == key,
                    QuotaRecordModel.regeneration_count < QuotaRecordModel.max_regenerations,
                )
                .values(
                    regeneration_count=QuotaRecordModel.regeneration_count + 1,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            session.commit()
            record = session.get(QuotaRecordModel, key, populate_existing=True)
            if record is None:
                raise QuotaServiceError(f"quota record for {key!r} vanished")
            status = QuotaStatus(used=record.regeneration_count, maximum=record.max_regenerations)
        if result.rowcount == 0:
            raise QuotaExceededError(status.used, status.maximum)
        return status

    def _get_or_create(self, session: Session, key: str) -> QuotaRecordModel:
        record = session.get(QuotaRecordModel, key)
        if record is None:
            record = QuotaRecordModel(
                identity=key,
                regeneration_count=0,
                max_regenerations=self.default_max_regenerations,
                updated_at=datetime.now(timezone.utc),
            )
            session.add(record)
            session.flush()
        return record


__all__ = [
    "HttpQuotaService",
    "QuotaService",
    "SqlQuotaService",
    "normalize_identity",
]
