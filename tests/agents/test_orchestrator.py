"""Tests for the pipeline orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from e2e_triage.agents.base import StageConfig
from e2e_triage.agents.orchestrator import (
    Orchestrator,
    OrchestratorConfig,
    create_orchestrator,
)
from e2e_triage.core.models import Approach
from e2e_triage.utils.logging import run_id_ctx
from tests.factories import (
    ANALYSIS,
    FIX_GENERATION,
    INVESTIGATION,
    NEW_CODE,
    REVIEW,
    TEST_FILE,
    TEST_FILE_CONTENT,
    make_analysis_payload,
    make_failure_context,
    make_fix_payload,
    make_investigation_payload,
    make_review_payload,
    to_json,
)
from tests.fakes import DictSourceReader, ScriptedGenerator


def scripted(**overrides) -> ScriptedGenerator:
    """Generator answering every stage with a passing reply unless overridden."""
    route = {
        ANALYSIS: to_json(make_analysis_payload()),
        INVESTIGATION: to_json(make_investigation_payload()),
        FIX_GENERATION: to_json(make_fix_payload()),
        REVIEW: to_json(make_review_payload()),
    }
    route.update(overrides)
    return ScriptedGenerator(route=route)


def make_orchestrator(generator, reader=None, **config) -> Orchestrator:
    if reader is None:
        reader = DictSourceReader(files={TEST_FILE: TEST_FILE_CONTENT})
    return Orchestrator(generator, OrchestratorConfig(**config), source_reader=reader)


class TestOrchestratorConfig:
    """Test suite for OrchestratorConfig validation."""

    def test_defaults(self):
        config = OrchestratorConfig()

        assert config.max_iterations == 3
        assert config.total_timeout == 120.0
        assert config.min_confidence == 70.0
        assert config.require_review is True
        assert config.fallback_to_single_shot is True
        assert config.stage.timeout == 60.0

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_iterations": 0}, {"total_timeout": 0}, {"min_confidence": 101}],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            OrchestratorConfig(**kwargs)

    def test_create_orchestrator(self):
        """The factory wires generator, config and reader."""
        generator = ScriptedGenerator()
        config = OrchestratorConfig(max_iterations=1)

        orchestrator = create_orchestrator(generator, config, revision="dev")

        assert orchestrator.generator is generator
        assert orchestrator.config is config
        assert orchestrator.revision == "dev"


class TestHappyPath:
    """Test suite for runs that produce a fix."""

    @pytest.mark.asyncio
    async def test_approved_fix_is_agentic(self):
        """Analysis, code reading, investigation, fix and review all succeed."""
        # Given
        generator = scripted()

        # When
        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        # Then
        assert result.success is True
        assert result.approach is Approach.AGENTIC
        assert result.iterations == 1
        assert result.error is None
        assert result.accepted_without_review is False
        assert result.fix.confidence == 85
        assert result.fix.proposed_changes[0].new_code == NEW_CODE
        assert result.agent_results.code_reading.success is True
        assert len(result.agent_results.fix_attempts) == 1

    @pytest.mark.asyncio
    async def test_fetched_source_reaches_later_stages(self):
        """Test file content read by code reading is shown to fix generation and review."""
        generator = scripted()

        await make_orchestrator(generator).orchestrate(make_failure_context())

        assert TEST_FILE_CONTENT in generator.calls_for(FIX_GENERATION)[0].prompt_text
        assert "(for verification)" in generator.calls_for(REVIEW)[0].prompt_text

    @pytest.mark.asyncio
    async def test_code_reading_failure_is_not_fatal(self):
        """Without any readable source the pipeline still runs."""
        generator = scripted()

        result = await make_orchestrator(generator, reader=DictSourceReader()).orchestrate(
            make_failure_context()
        )

        assert result.approach is Approach.AGENTIC
        assert result.agent_results.code_reading.success is False

    @pytest.mark.asyncio
    async def test_review_can_be_skipped(self):
        """With require_review off the first confident fix is accepted unreviewed."""
        generator = scripted()

        result = await make_orchestrator(generator, require_review=False).orchestrate(
            make_failure_context()
        )

        assert result.approach is Approach.AGENTIC
        assert generator.calls_for(REVIEW) == []
        assert result.agent_results.review is None


class TestEarlyFailures:
    """Test suite for runs that stop before fix generation."""

    @pytest.mark.asyncio
    async def test_analysis_failure_falls_back(self):
        """An unparseable analysis ends the run as SINGLE_SHOT."""
        generator = scripted(**{ANALYSIS: "I cannot help with that"})

        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        assert result.success is False
        assert result.approach is Approach.SINGLE_SHOT
        assert result.error == "Analysis stage failed: Failed to parse analysis response"
        assert result.iterations == 0
        assert result.agent_results.investigation is None
        assert generator.calls_for(FIX_GENERATION) == []

    @pytest.mark.asyncio
    async def test_analysis_failure_without_fallback(self):
        """With fallback off the same failure is FAILED."""
        generator = scripted(**{ANALYSIS: RuntimeError("quota exceeded")})

        result = await make_orchestrator(generator, fallback_to_single_shot=False).orchestrate(
            make_failure_context()
        )

        assert result.approach is Approach.FAILED
        assert result.error == "Analysis stage failed: quota exceeded"

    @pytest.mark.asyncio
    async def test_investigation_failure(self):
        """An investigation without findings ends the run."""
        generator = scripted(
            **{INVESTIGATION: to_json(make_investigation_payload(findings=[], primaryFinding=None))}
        )

        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        assert result.approach is Approach.SINGLE_SHOT
        assert result.error == (
            "Investigation stage failed: Failed to parse investigation response"
        )

    @pytest.mark.asyncio
    async def test_stage_timeout(self):
        """A slow stage fails with its own timeout message."""
        generator = scripted()
        generator.delay = 0.5
        config = {"stage": StageConfig(timeout=0.01)}

        result = await make_orchestrator(generator, **config).orchestrate(make_failure_context())

        assert result.approach is Approach.SINGLE_SHOT
        assert result.error == "Analysis stage failed: analysis timed out after 0.01s"


class TestFixLoop:
    """Test suite for the fix generation and review loop."""

    @pytest.mark.asyncio
    async def test_low_confidence_is_retried_with_feedback(self):
        """A fix below min_confidence is not reviewed and the next attempt gets feedback."""
        # Given
        generator = scripted(
            **{
                FIX_GENERATION: [
                    to_json(make_fix_payload(confidence=40)),
                    to_json(make_fix_payload(confidence=90)),
                ]
            }
        )

        # When
        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        # Then
        fix_calls = generator.calls_for(FIX_GENERATION)
        assert result.iterations == 2
        assert result.fix.confidence == 90
        assert "Previous Review Feedback" not in fix_calls[0].prompt_text
        assert "Confidence too low (40%). Please improve the fix." in fix_calls[1].prompt_text
        assert len(generator.calls_for(REVIEW)) == 1

    @pytest.mark.asyncio
    async def test_rejection_feedback_is_carried(self):
        """Review issues become feedback for the next attempt."""
        rejection = make_review_payload(
            approved=False,
            issues=[{"severity": "WARNING", "description": "fragile selector"}],
        )
        generator = scripted(**{REVIEW: [to_json(rejection), to_json(make_review_payload())]})

        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        assert result.approach is Approach.AGENTIC
        assert result.iterations == 2
        assert result.accepted_without_review is False
        assert "[WARNING] fragile selector" in generator.calls_for(FIX_GENERATION)[1].prompt_text

    @pytest.mark.asyncio
    async def test_old_code_mismatch_rejects_approved_fix(self):
        """A fix whose old code is not in the test file is rejected despite approval."""
        # Given
        bad_fix = make_fix_payload(
            changes=[
                {
                    "file": TEST_FILE,
                    "oldCode": "cy.get('#submit').click()",
                    "newCode": "cy.get('#login').click()",
                }
            ]
        )
        generator = scripted(**{FIX_GENERATION: [to_json(bad_fix), to_json(make_fix_payload())]})

        # When
        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        # Then
        assert result.iterations == 2
        assert result.fix.proposed_changes[0].new_code == NEW_CODE
        assert "[CRITICAL] oldCode not found in file" in (
            generator.calls_for(FIX_GENERATION)[1].prompt_text
        )

    @pytest.mark.asyncio
    async def test_review_failure_moves_to_next_attempt(self):
        """A review that cannot be parsed consumes the iteration."""
        generator = scripted(**{REVIEW: ["not json", to_json(make_review_payload())]})

        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        assert result.approach is Approach.AGENTIC
        assert result.iterations == 2
        assert "Previous Review Feedback" not in (
            generator.calls_for(FIX_GENERATION)[1].prompt_text
        )

    @pytest.mark.asyncio
    async def test_best_confident_fix_returned_after_rejections(self):
        """Running out of iterations returns a confident last fix, flagged as unreviewed."""
        generator = scripted(**{REVIEW: to_json(make_review_payload(approved=False))})

        result = await make_orchestrator(generator, max_iterations=2).orchestrate(
            make_failure_context()
        )

        assert result.success is True
        assert result.approach is Approach.AGENTIC
        assert result.accepted_without_review is True
        assert result.iterations == 2

    @pytest.mark.asyncio
    async def test_critical_rejections_never_return_a_fix(self):
        """A confident fix rejected with a CRITICAL issue every time is not returned."""
        # Given
        rejection = make_review_payload(
            approved=False,
            issues=[{"severity": "CRITICAL", "description": "wrong element"}],
        )
        generator = scripted(**{REVIEW: to_json(rejection)})

        # When
        result = await make_orchestrator(generator, max_iterations=2).orchestrate(
            make_failure_context(error_message='element not found: [data-testid="submit"]')
        )

        # Then
        assert result.success is False
        assert result.fix is None
        assert result.iterations == 2
        assert result.error == "Max iterations (2) reached without valid fix"

    @pytest.mark.asyncio
    async def test_review_failure_on_last_attempt_returns_best_fix(self):
        """A confident fix whose review could not be parsed is returned best-effort."""
        generator = scripted(**{REVIEW: "no verdict"})

        result = await make_orchestrator(generator, max_iterations=1).orchestrate(
            make_failure_context()
        )

        assert result.approach is Approach.AGENTIC
        assert result.accepted_without_review is True

    @pytest.mark.asyncio
    async def test_max_iterations_without_confident_fix(self):
        """Only low-confidence fixes end the run without a fix."""
        generator = scripted(**{FIX_GENERATION: to_json(make_fix_payload(confidence=40))})

        result = await make_orchestrator(generator).orchestrate(make_failure_context())

        assert result.success is False
        assert result.fix is None
        assert result.approach is Approach.SINGLE_SHOT
        assert result.error == "Max iterations (3) reached without valid fix"
        assert len(result.agent_results.fix_attempts) == 3
        assert generator.calls_for(REVIEW) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply", ["{}", RuntimeError("provider unavailable")], ids=["unparseable", "raising"]
    )
    @pytest.mark.parametrize(
        ("fallback", "approach"),
        [(True, Approach.SINGLE_SHOT), (False, Approach.FAILED)],
    )
    async def test_failed_generations_count_as_iterations(self, reply, fallback, approach):
        """Fix generation that always fails uses up iterations and leaves no fix."""
        # Given
        generator = scripted(**{FIX_GENERATION: reply})

        # When
        result = await make_orchestrator(
            generator, max_iterations=2, fallback_to_single_shot=fallback
        ).orchestrate(make_failure_context())

        # Then
        assert result.success is False
        assert result.fix is None
        assert result.approach is approach
        assert result.iterations == 2
        assert result.error == "Max iterations (2) reached without valid fix"
        assert len(generator.calls_for(FIX_GENERATION)) == 2
        assert generator.calls_for(REVIEW) == []


class TestRunIsolation:
    """Test suite for deadlines, errors and isolation between runs."""

    @pytest.mark.asyncio
    async def test_global_timeout(self):
        """The run deadline ends the pipeline as FAILED."""
        generator = scripted()
        generator.delay = 0.5

        result = await make_orchestrator(generator, total_timeout=0.05).orchestrate(
            make_failure_context()
        )

        assert result.success is False
        assert result.approach is Approach.FAILED
        assert result.error == "Pipeline timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_failed(self, mocker):
        """An exception escaping the pipeline is reported, not raised."""
        mocker.patch.object(Orchestrator, "_run_pipeline", side_effect=RuntimeError("boom"))

        result = await make_orchestrator(scripted()).orchestrate(make_failure_context())

        assert result.approach is Approach.FAILED
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_caller_context_is_not_mutated(self):
        """Fetched source is kept on the run's own copy of the context."""
        context = make_failure_context()

        await make_orchestrator(scripted()).orchestrate(context)

        assert context.source_file_content is None
        assert context.related_files == {}

    @pytest.mark.asyncio
    async def test_run_id_is_reset(self):
        """The run id is only set for the duration of a run."""
        seen = []

        def capture(call):
            seen.append(run_id_ctx.get())
            return to_json(make_analysis_payload())

        await make_orchestrator(scripted(**{ANALYSIS: capture})).orchestrate(
            make_failure_context()
        )

        assert seen[0] != ""
        assert run_id_ctx.get() == ""

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_independent(self):
        """Concurrent runs on one orchestrator do not share state."""
        # Given
        orchestrator = make_orchestrator(
            scripted(),
            reader=DictSourceReader(
                files={TEST_FILE: TEST_FILE_CONTENT, "cypress/e2e/other.cy.ts": TEST_FILE_CONTENT}
            ),
        )
        first = make_failure_context()
        second = make_failure_context(test_file="cypress/e2e/other.cy.ts")

        # When
        results = await asyncio.gather(
            orchestrator.orchestrate(first), orchestrator.orchestrate(second)
        )

        # Then
        assert [r.approach for r in results] == [Approach.AGENTIC, Approach.AGENTIC]
        assert [r.iterations for r in results] == [1, 1]
        assert results[0].agent_results is not results[1].agent_results
