"""Check-then-consume discipline around the quota service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..domain.models import QuotaCheck, QuotaStatus
from .quota_service import QuotaService, normalize_identity

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class QuotaGate:
    """Thin wrapper that logs and normalises quota calls.

    Callers must ``check_limit`` first and ``consume`` only immediately before
    starting a run. The two calls are not atomic: two concurrent bulk
    regenerations for the same identity can both pass the check.
    """

    service: QuotaService
    log: logging.Logger = field(default_factory=lambda: logger)

    async def check_limit(self, identity: str) -> QuotaCheck:
        status = await self.service.can_regenerate(normalize_identity(identity))
        self.log.info(
            "quota.check",
            extra={"used": status.used, "maximum": status.maximum},
        )
        return QuotaCheck(
            can_proceed=status.can_regenerate,
            used=status.used,
            maximum=status.maximum,
        )

    async def consume(self, identity: str) -> QuotaStatus:
        status = await self.service.consume_regeneration(normalize_identity(identity))
        self.log.info(
            "quota.consume",
            extra={"used": status.used, "maximum": status.maximum},
        )
        return status


__all__ = ["QuotaGate"]
