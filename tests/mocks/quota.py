"""In-memory quota service for orchestrator tests."""

from __future__ import annotations

from src.surfacegen.domain.models import QuotaStatus
from src.surfacegen.exceptions import QuotaExceededError, QuotaServiceError
from src.surfacegen.quota.quota_service import QuotaService


class InMemoryQuotaService(QuotaService):
    def __init__(self, *, used: int = 0, maximum: int = 3, unavailable: bool = False) -> None:
        self.counters: dict[str, int] = {}
        self.default_used = used
        self.maximum = maximum
        self.unavailable = unavailable
        self.checks: list[str] = []
        self.consumes: list[str] = []

    async def can_regenerate(self, identity: str) -> QuotaStatus:
        self.checks.append(identity)
        if self.unavailable:
            raise QuotaServiceError("quota backend offline")
        return QuotaStatus(used=self.counters.get(identity, self.default_used), maximum=self.maximum)

    async def consume_regeneration(self, identity: str) -> QuotaStatus:
        self.consumes.append(identity)
        if self.unavailable:
            raise QuotaServiceError("quota backend offline")
        used = self.counters.get(identity, self.default_used)
        if used >= self.maximum:
            raise QuotaExceededError(used, self.maximum)
        self.counters[identity] = used + 1
        return QuotaStatus(used=used + 1, maximum=self.maximum)
