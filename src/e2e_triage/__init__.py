"""e2e-triage - Agentic triage and repair of failing end-to-end tests."""

__version__ = "0.4.0"

from e2e_triage.agents.orchestrator import Orchestrator, OrchestratorConfig, create_orchestrator
from e2e_triage.core.models import (
    Approach,
    ChangedFile,
    DiffSummary,
    FailureContext,
    Fix,
    Framework,
    PipelineResult,
    ProposedChange,
    Screenshot,
)

__all__ = [
    "FailureContext",
    "Framework",
    "Screenshot",
    "ChangedFile",
    "DiffSummary",
    "Fix",
    "ProposedChange",
    "Approach",
    "PipelineResult",
    "Orchestrator",
    "OrchestratorConfig",
    "create_orchestrator",
]
