"""Durable storage for the bounded generation history."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from ..db.db_models import HistoryRecordModel
from ..exceptions import PersistenceError, handle_sqlalchemy_errors


class HistoryRepository(ABC):
    """Ordered list of serialized runs stored under a key."""

    @abstractmethod
    def put(self, key: str, runs: Sequence[dict[str, Any]], max_len: int) -> None:
        """Store at most ``max_len`` leading entries of ``runs``."""

    @abstractmethod
    def get(self, key: str) -> list[dict[str, Any]]:
        """Return the stored list; raise :class:`PersistenceError` when unreadable."""


class SqlHistoryRepository(HistoryRepository):
    """JSON payload per key in the ``generation_history`` table."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        max_payload_bytes: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._max_payload_bytes = max_payload_bytes

    def put(self, key: str, runs: Sequence[dict[str, Any]], max_len: int) -> None:
        trimmed = list(runs)[: max(0, max_len)]
        payload = json.dumps(trimmed, ensure_ascii=False)
        if self._max_payload_bytes is not None and len(payload.encode("utf-8")) > self._max_payload_bytes:
            raise PersistenceError("history storage quota exceeded")
        with handle_sqlalchemy_errors(entity="history"), self._session_factory() as session:
            model = session.get(HistoryRecordModel, key)
            if model is None:
                model = HistoryRecordModel(key=key)
            model.value = payload
            model.run_count = len(trimmed)
            model.updated_at = datetime.now(timezone.utc)
            session.add(model)
            session.commit()

    def get(self, key: str) -> list[dict[str, Any]]:
        with handle_sqlalchemy_errors(entity="history"), self._session_factory() as session:
            model = session.get(HistoryRecordModel, key)
            if model is None:
                return []
            raw = model.value
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise PersistenceError("stored history is not valid JSON") from exc
        if not isinstance(data, list):
            raise PersistenceError("stored history is not a list")
        return data

    def delete(self, key: str) -> None:
        with handle_sqlalchemy_errors(entity="history"), self._session_factory() as session:
            model = session.get(HistoryRecordModel, key)
            if model is not None:
                session.delete(model)
                session.commit()


__all__ = ["HistoryRepository", "SqlHistoryRepository"]
