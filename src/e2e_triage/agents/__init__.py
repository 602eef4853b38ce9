"""Repair pipeline stages and their orchestrator."""

from e2e_triage.agents.analysis import AnalysisInput, AnalysisStage
from e2e_triage.agents.base import PromptedStage, Stage, StageConfig
from e2e_triage.agents.code_reading import CodeReadingInput, CodeReadingStage
from e2e_triage.agents.fix_generation import FixGenerationInput, FixGenerationStage
from e2e_triage.agents.investigation import InvestigationInput, InvestigationStage
from e2e_triage.agents.orchestrator import Orchestrator, OrchestratorConfig, create_orchestrator
from e2e_triage.agents.review import ReviewInput, ReviewStage, validate_old_code_exists
from e2e_triage.agents.schemas import (
    AnalysisOutput,
    CodeReadingOutput,
    FixGenerationOutput,
    InvestigationOutput,
    ReviewOutput,
    RootCauseCategory,
    coerce_root_cause,
    decide_approval,
)

__all__ = [
    # Harness
    "Stage",
    "PromptedStage",
    "StageConfig",
    # Stages
    "AnalysisStage",
    "AnalysisInput",
    "CodeReadingStage",
    "CodeReadingInput",
    "InvestigationStage",
    "InvestigationInput",
    "FixGenerationStage",
    "FixGenerationInput",
    "ReviewStage",
    "ReviewInput",
    "validate_old_code_exists",
    # Outputs
    "AnalysisOutput",
    "CodeReadingOutput",
    "InvestigationOutput",
    "FixGenerationOutput",
    "ReviewOutput",
    "RootCauseCategory",
    "coerce_root_cause",
    "decide_approval",
    # Orchestration
    "Orchestrator",
    "OrchestratorConfig",
    "create_orchestrator",
]
