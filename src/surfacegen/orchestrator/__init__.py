"""Public façade of the generation engine."""

from .orchestrator import (
    BulkRegenerateResult,
    GenerationOrchestrator,
    OrchestratorEvent,
    OrchestratorEventKind,
)

__all__ = [
    "BulkRegenerateResult",
    "GenerationOrchestrator",
    "OrchestratorEvent",
    "OrchestratorEventKind",
]
