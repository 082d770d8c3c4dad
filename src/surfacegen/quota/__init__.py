"""Regeneration quota gate and service clients."""

from .quota_gate import QuotaGate
from .quota_service import HttpQuotaService, QuotaService, SqlQuotaService

__all__ = ["HttpQuotaService", "QuotaGate", "QuotaService", "SqlQuotaService"]
