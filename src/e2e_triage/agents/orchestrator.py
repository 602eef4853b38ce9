"""Pipeline orchestration.

Runs the stages in a fixed order:

    analysis -> code reading -> investigation -> (fix generation -> gate -> review)*

under a single run deadline. Every run gets fresh stage instances and its
own copy of the failure context, so concurrent runs share no state.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from e2e_triage.agents.analysis import AnalysisInput, AnalysisStage
from e2e_triage.agents.base import StageConfig
from e2e_triage.agents.code_reading import CodeReadingInput, CodeReadingStage
from e2e_triage.agents.fix_generation import FixGenerationInput, FixGenerationStage
from e2e_triage.agents.investigation import InvestigationInput, InvestigationStage
from e2e_triage.agents.review import ReviewInput, ReviewStage
from e2e_triage.core.models import (
    Approach,
    FailureContext,
    Fix,
    PipelineResult,
    StageResults,
)
from e2e_triage.utils.logging import get_logger, run_id_ctx

if TYPE_CHECKING:
    from e2e_triage.agents.schemas import FixGenerationOutput
    from e2e_triage.llm.providers.base import Generator
    from e2e_triage.sources.base import SourceReader

logger = get_logger(__name__)

NO_FIX_ERROR = "Agentic approach did not produce a valid fix"


@dataclass(frozen=True)
class OrchestratorConfig:
    """Knobs for one orchestrator.

    Attributes:
        max_iterations: Fix generation attempts before giving up.
        total_timeout: Seconds allowed for a whole run.
        min_confidence: Lowest fix confidence (0-100) that may be accepted.
        require_review: Whether a fix needs an approving review.
        fallback_to_single_shot: Report SINGLE_SHOT instead of FAILED when
            no fix was found, so the caller can try its simpler path.
        stage: Settings shared by every stage.
    """

    max_iterations: int = 3
    total_timeout: float = 120.0
    min_confidence: float = 70.0
    require_review: bool = True
    fallback_to_single_shot: bool = True
    stage: StageConfig = field(default_factory=StageConfig)

    def __post_init__(self) -> None:
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if self.total_timeout <= 0:
            raise ValueError(f"total_timeout must be positive, got {self.total_timeout}")
        if not 0 <= self.min_confidence <= 100:
            raise ValueError(f"min_confidence must be within 0-100, got {self.min_confidence}")


@dataclass
class _RunState:
    """Progress of one run, kept so a timed out run can still report it."""

    results: StageResults = field(default_factory=StageResults)
    iterations: int = 0


@dataclass
class _Outcome:
    fix: Fix | None = None
    error: str | None = None
    accepted_without_review: bool = False


@dataclass
class _Stages:
    analysis: AnalysisStage
    code_reading: CodeReadingStage
    investigation: InvestigationStage
    fix_generation: FixGenerationStage
    review: ReviewStage


class Orchestrator:
    """Coordinates the stages of the repair pipeline.

    Usage:
        orchestrator = Orchestrator(generator, source_reader=reader, revision="abc123")
        result = await orchestrator.orchestrate(context)
    """

    def __init__(
        self,
        generator: Generator,
        config: OrchestratorConfig | None = None,
        source_reader: SourceReader | None = None,
        revision: str = "main",
    ):
        self.generator = generator
        self.config = config or OrchestratorConfig()
        self.source_reader = source_reader
        self.revision = revision

    def _build_stages(self) -> _Stages:
        stage_config = self.config.stage
        return _Stages(
            analysis=AnalysisStage(self.generator, stage_config),
            code_reading=CodeReadingStage(self.source_reader, self.revision, stage_config),
            investigation=InvestigationStage(self.generator, stage_config),
            fix_generation=FixGenerationStage(self.generator, stage_config),
            review=ReviewStage(self.generator, stage_config),
        )

    async def orchestrate(self, context: FailureContext) -> PipelineResult:
        """
        Run the full pipeline for one failure.

        Never raises; every failure mode is reported in the result.

        Args:
            context: The failing test. It is copied, never mutated.

        Returns:
            PipelineResult with the fix (if any), the approach and the
            per-stage results gathered.
        """
        token = run_id_ctx.set(uuid.uuid4().hex[:12])
        try:
            return await self._orchestrate(context)
        finally:
            run_id_ctx.reset(token)

    async def _orchestrate(self, context: FailureContext) -> PipelineResult:
        started = time.monotonic()
        state = _RunState()
        run_context = replace(
            context,
            screenshots=list(context.screenshots),
            logs=list(context.logs),
            related_files=dict(context.related_files),
        )

        logger.info(
            "pipeline_started",
            test_file=context.test_file,
            test_name=context.test_name,
            framework=context.framework.value,
        )

        try:
            async with asyncio.timeout(self.config.total_timeout):
                outcome = await self._run_pipeline(run_context, state)
        except TimeoutError:
            error = f"Pipeline timed out after {self.config.total_timeout:g}s"
            logger.error("pipeline_timed_out", iterations=state.iterations, error=error)
            return self._result(state, started, Approach.FAILED, error=error)
        except Exception as e:
            logger.exception("pipeline_failed", error=str(e))
            return self._result(state, started, Approach.FAILED, error=str(e) or type(e).__name__)

        if outcome.fix is not None:
            return self._result(
                state,
                started,
                Approach.AGENTIC,
                fix=outcome.fix,
                accepted_without_review=outcome.accepted_without_review,
            )

        approach = Approach.SINGLE_SHOT if self.config.fallback_to_single_shot else Approach.FAILED
        return self._result(state, started, approach, error=outcome.error or NO_FIX_ERROR)

    def _result(
        self,
        state: _RunState,
        started: float,
        approach: Approach,
        **kwargs: Any,
    ) -> PipelineResult:
        total_time_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "pipeline_completed",
            approach=approach.value,
            iterations=state.iterations,
            total_time_ms=total_time_ms,
            success=approach is Approach.AGENTIC,
        )
        return PipelineResult(
            success=approach is Approach.AGENTIC,
            approach=approach,
            total_time_ms=total_time_ms,
            iterations=state.iterations,
            agent_results=state.results,
            **kwargs,
        )

    async def _run_pipeline(self, context: FailureContext, state: _RunState) -> _Outcome:
        stages = self._build_stages()
        results = state.results

        # Step 1: analysis
        results.analysis = await stages.analysis.execute(AnalysisInput(), context)
        if not results.analysis.success or results.analysis.data is None:
            return _Outcome(error=f"Analysis stage failed: {results.analysis.error}")
        analysis = results.analysis.data
        logger.info(
            "analysis_completed",
            root_cause=analysis.root_cause_category.value,
            confidence=analysis.confidence,
        )

        # Step 2: code reading, best effort
        results.code_reading = await stages.code_reading.execute(
            CodeReadingInput(test_file=context.test_file, error_selectors=list(analysis.selectors)),
            context,
        )
        code_context = results.code_reading.data if results.code_reading.success else None
        if code_context is not None:
            context.source_file_content = code_context.test_file_content
            context.related_files = {f.path: f.content for f in code_context.related_files}
            logger.info("code_context_loaded", files=len(code_context.related_files) + 1)

        # Step 3: investigation
        results.investigation = await stages.investigation.execute(
            InvestigationInput(analysis=analysis, code_context=code_context), context
        )
        if not results.investigation.success or results.investigation.data is None:
            return _Outcome(error=f"Investigation stage failed: {results.investigation.error}")
        investigation = results.investigation.data
        logger.info(
            "investigation_completed",
            findings=len(investigation.findings),
            test_code_fixable=investigation.is_test_code_fixable,
        )

        # Step 4: fix generation and review
        last_fix: FixGenerationOutput | None = None
        last_fix_blocked = False
        feedback: str | None = None

        while state.iterations < self.config.max_iterations:
            state.iterations += 1
            iteration = state.iterations

            attempt = await stages.fix_generation.execute(
                FixGenerationInput(
                    analysis=analysis,
                    investigation=investigation,
                    previous_feedback=feedback,
                ),
                context,
            )
            results.fix_generation = attempt
            results.fix_attempts.append(attempt)

            if not attempt.success or attempt.data is None:
                logger.warning("fix_generation_failed", iteration=iteration, error=attempt.error)
                continue

            last_fix = attempt.data
            last_fix_blocked = False
            if last_fix.confidence < self.config.min_confidence:
                logger.warning(
                    "fix_confidence_below_threshold",
                    iteration=iteration,
                    confidence=last_fix.confidence,
                    min_confidence=self.config.min_confidence,
                )
                feedback = f"Confidence too low ({last_fix.confidence:g}%). Please improve the fix."
                continue

            if not self.config.require_review:
                logger.info("fix_accepted", iteration=iteration, reviewed=False)
                return _Outcome(fix=Fix.from_generation(last_fix))

            results.review = await stages.review.execute(
                ReviewInput(proposed_fix=last_fix, analysis=analysis, code_context=code_context),
                context,
            )
            if not results.review.success or results.review.data is None:
                logger.warning("review_failed", iteration=iteration, error=results.review.error)
                continue

            review = results.review.data
            if review.approved:
                logger.info("fix_accepted", iteration=iteration, reviewed=True)
                return _Outcome(fix=Fix.from_generation(last_fix))

            feedback = review.feedback()
            last_fix_blocked = bool(review.critical_issues)
            logger.warning("fix_rejected", iteration=iteration, issues=len(review.issues))

        # Step 5: out of iterations; a candidate with CRITICAL review issues is never returned
        if (
            last_fix is not None
            and not last_fix_blocked
            and last_fix.confidence >= self.config.min_confidence
        ):
            logger.warning(
                "max_iterations_reached_returning_best_fix",
                iterations=state.iterations,
                confidence=last_fix.confidence,
            )
            return _Outcome(fix=Fix.from_generation(last_fix), accepted_without_review=True)

        return _Outcome(
            error=f"Max iterations ({self.config.max_iterations}) reached without valid fix"
        )


def create_orchestrator(
    generator: Generator,
    config: OrchestratorConfig | None = None,
    source_reader: SourceReader | None = None,
    revision: str = "main",
) -> Orchestrator:
    """Create an orchestrator; kept as the public factory entry point."""
    return Orchestrator(generator, config=config, source_reader=source_reader, revision=revision)
