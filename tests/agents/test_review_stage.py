"""Tests for the review stage and the local old-code check."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from e2e_triage.agents.review import ReviewInput, ReviewStage, validate_old_code_exists
from e2e_triage.agents.schemas import CodeChange, ReviewSeverity
from tests.factories import (
    OLD_CODE,
    TEST_FILE,
    TEST_FILE_CONTENT,
    make_analysis_output,
    make_change,
    make_failure_context,
    make_fix_output,
    make_review_payload,
    to_json,
)
from tests.fakes import ScriptedGenerator


def change(old_code: str, file: str = TEST_FILE) -> CodeChange:
    return CodeChange.model_validate(make_change(oldCode=old_code, file=file))


def make_input(**fix_overrides) -> ReviewInput:
    return ReviewInput(proposed_fix=make_fix_output(**fix_overrides), analysis=make_analysis_output())


class TestValidateOldCodeExists:
    """Test suite for validate_old_code_exists."""

    def test_present_code_has_no_issues(self):
        """Changes whose old code is in the file pass."""
        assert validate_old_code_exists([change(OLD_CODE)], TEST_FILE_CONTENT) == []

    def test_missing_code_is_critical(self):
        """Each absent old code produces a CRITICAL issue with its index."""
        issues = validate_old_code_exists(
            [change(OLD_CODE), change("cy.get('#nope')"), change("cy.wait(500)")],
            TEST_FILE_CONTENT,
        )

        assert [issue.change_index for issue in issues] == [1, 2]
        assert all(issue.severity is ReviewSeverity.CRITICAL for issue in issues)
        assert issues[0].description == (
            f"oldCode not found in file. The code to replace doesn't exist in {TEST_FILE}"
        )
        assert issues[0].suggestion == (
            "Verify the exact code content including whitespace and indentation"
        )

    def test_whitespace_must_match_exactly(self):
        """Old code differing only in indentation is not found."""
        issues = validate_old_code_exists([change("\t" + OLD_CODE)], TEST_FILE_CONTENT)

        assert len(issues) == 1

    @given(
        content=st.text(min_size=1, max_size=200),
        data=st.data(),
    )
    def test_substrings_always_pass(self, content, data):
        """Any non-empty substring of the file is accepted."""
        start = data.draw(st.integers(min_value=0, max_value=len(content) - 1))
        end = data.draw(st.integers(min_value=start + 1, max_value=len(content)))

        assert validate_old_code_exists([change(content[start:end])], content) == []


class TestReviewPrompt:
    """Test suite for the review user prompt."""

    def test_lists_changes(self):
        """Each change is numbered with its old and new code."""
        prompt = ReviewStage(ScriptedGenerator()).build_user_prompt(
            make_input(), make_failure_context()
        )

        assert f"#### Change 1: {TEST_FILE}" in prompt
        assert "Type: SELECTOR_UPDATE" in prompt
        assert OLD_CODE in prompt
        assert "- **Confidence:** 85%" in prompt
        assert "- Other specs may use the old selector" in prompt
        assert "(for verification)" not in prompt

    def test_includes_known_file_content(self):
        """Fetched content of changed files is shown for verification."""
        context = make_failure_context(source_file_content=TEST_FILE_CONTENT)

        prompt = ReviewStage(ScriptedGenerator()).build_user_prompt(make_input(), context)

        assert f"### Original File Content: {TEST_FILE} (for verification)" in prompt
        assert TEST_FILE_CONTENT in prompt


class TestReviewExecution:
    """Test suite for ReviewStage.execute."""

    @pytest.mark.asyncio
    async def test_approves_clean_fix(self):
        """An approving review with no issues approves."""
        generator = ScriptedGenerator(replies=[to_json(make_review_payload())])
        context = make_failure_context(source_file_content=TEST_FILE_CONTENT)

        result = await ReviewStage(generator).execute(make_input(), context)

        assert result.success is True
        assert result.data.approved is True
        assert result.data.fix_confidence == 88

    @pytest.mark.asyncio
    async def test_critical_issue_overrides_approval(self):
        """A CRITICAL issue from the generator rejects even when approved is true."""
        payload = make_review_payload(
            approved=True,
            issues=[{"severity": "CRITICAL", "description": "breaks login", "changeIndex": 0}],
        )
        generator = ScriptedGenerator(replies=[to_json(payload)])

        result = await ReviewStage(generator).execute(make_input(), make_failure_context())

        assert result.data.approved is False
        assert result.data.feedback() == "[CRITICAL] breaks login"

    @pytest.mark.asyncio
    async def test_merges_local_old_code_issue(self):
        """An approving review is rejected when old code is not in the fetched file."""
        # Given
        generator = ScriptedGenerator(replies=[to_json(make_review_payload())])
        context = make_failure_context(source_file_content=TEST_FILE_CONTENT)
        stage_input = make_input(changes=[make_change(oldCode="cy.get('#missing')")])

        # When
        result = await ReviewStage(generator).execute(stage_input, context)

        # Then
        assert result.success is True
        assert result.data.approved is False
        assert len(result.data.critical_issues) == 1
        assert result.data.critical_issues[0].change_index == 0

    @pytest.mark.asyncio
    async def test_unknown_file_is_not_checked_locally(self):
        """Changes to files the pipeline never fetched rely on the generator."""
        generator = ScriptedGenerator(replies=[to_json(make_review_payload())])
        stage_input = make_input(
            changes=[make_change(file="src/other.ts", oldCode="anything at all")]
        )

        result = await ReviewStage(generator).execute(stage_input, make_failure_context())

        assert result.data.approved is True
        assert result.data.issues == []

    @pytest.mark.asyncio
    async def test_missing_approved_defaults_to_approval(self):
        """A review without an approved field approves when nothing is critical."""
        payload = make_review_payload()
        del payload["approved"]
        generator = ScriptedGenerator(replies=[to_json(payload)])

        result = await ReviewStage(generator).execute(make_input(), make_failure_context())

        assert result.data.approved is True
