"""Tests for the analysis stage."""

from __future__ import annotations

import pytest

from e2e_triage.agents.analysis import AnalysisInput, AnalysisStage
from e2e_triage.agents.schemas import RootCauseCategory
from e2e_triage.core.models import Framework
from tests.factories import (
    make_analysis_payload,
    make_diff,
    make_failure_context,
    make_screenshot,
    to_json,
)
from tests.fakes import ScriptedGenerator


def build_prompt(context, stage_input=None) -> str:
    stage = AnalysisStage(ScriptedGenerator())
    return stage.build_user_prompt(stage_input or AnalysisInput(), context)


class TestAnalysisPrompt:
    """Test suite for the analysis user prompt."""

    def test_includes_test_information(self):
        """Test file, name, framework, error type and selector are listed."""
        prompt = build_prompt(make_failure_context())

        assert "- **Test File:** cypress/e2e/login.cy.ts" in prompt
        assert "- **Test Name:** login submits the form" in prompt
        assert "- **Test framework:** Cypress" in prompt
        assert "- **Error Type:** ELEMENT_NOT_FOUND" in prompt
        assert '- **Failed Selector:** [data-testid="submit-btn"]' in prompt

    def test_framework_label_for_webdriverio(self):
        """WebdriverIO failures are labeled as such."""
        prompt = build_prompt(make_failure_context(framework=Framework.WEBDRIVERIO))

        assert "- **Test framework:** WebDriverIO" in prompt

    def test_omits_missing_optional_fields(self):
        """Absent error type and selector produce no lines."""
        prompt = build_prompt(make_failure_context(error_type=None, error_selector=None))

        assert "Error Type" not in prompt
        assert "Failed Selector" not in prompt
        assert "### Stack Trace" not in prompt
        assert "### Relevant Logs" not in prompt

    def test_truncates_stack_trace_and_logs(self):
        """Stack traces keep 2000 chars and joined logs 3000."""
        context = make_failure_context(stack_trace="s" * 2500, logs=["l" * 2000, "m" * 2000])

        prompt = build_prompt(context)

        assert "s" * 2000 in prompt
        assert "s" * 2001 not in prompt
        logs_section = prompt.split("### Relevant Logs\n```\n")[1].split("\n```")[0]
        assert len(logs_section) == 3000

    def test_lists_changed_files_context_and_screenshots(self):
        """Diff files, extra context and the screenshot count are included."""
        context = make_failure_context(
            diff=make_diff("src/LoginForm.tsx"),
            screenshots=[make_screenshot(), make_screenshot("b.png")],
        )

        prompt = build_prompt(context, AnalysisInput(additional_context="Deployed yesterday"))

        assert "- src/LoginForm.tsx (modified)" in prompt
        assert "### Additional Context\nDeployed yesterday" in prompt
        assert "2 screenshot(s) attached" in prompt


class TestAnalysisExecution:
    """Test suite for AnalysisStage.execute."""

    @pytest.mark.asyncio
    async def test_parses_generated_analysis(self):
        """A valid payload is returned as AnalysisOutput."""
        generator = ScriptedGenerator(replies=[to_json(make_analysis_payload())])

        result = await AnalysisStage(generator).execute(AnalysisInput(), make_failure_context())

        assert result.success is True
        assert result.data.root_cause_category is RootCauseCategory.SELECTOR_MISMATCH
        assert result.data.selectors == ['[data-testid="submit-btn"]']

    @pytest.mark.asyncio
    async def test_unknown_category_is_coerced(self):
        """An invented category is accepted as UNKNOWN."""
        generator = ScriptedGenerator(
            replies=[to_json(make_analysis_payload(rootCauseCategory="GREMLINS"))]
        )

        result = await AnalysisStage(generator).execute(AnalysisInput(), make_failure_context())

        assert result.success is True
        assert result.data.root_cause_category is RootCauseCategory.UNKNOWN

    @pytest.mark.asyncio
    async def test_string_confidence_fails(self):
        """A numeric string confidence is rejected."""
        generator = ScriptedGenerator(replies=[to_json(make_analysis_payload(confidence="85"))])

        result = await AnalysisStage(generator).execute(AnalysisInput(), make_failure_context())

        assert result.success is False
        assert result.error == "Failed to parse analysis response"
