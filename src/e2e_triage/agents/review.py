"""Review stage: independently critique a candidate fix.

Approval is decided in code, never taken from the reviewer alone: any
CRITICAL issue rejects, and every change whose target file is known is
checked locally for an exact ``old_code`` match before deciding.
"""

from __future__ import annotations

from dataclasses import dataclass

from e2e_triage.agents.base import PromptedStage
from e2e_triage.agents.schemas import (
    AnalysisOutput,
    CodeChange,
    CodeReadingOutput,
    FixGenerationOutput,
    ReviewIssue,
    ReviewOutput,
    ReviewSeverity,
)
from e2e_triage.core.models import FailureContext
from e2e_triage.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a senior QA engineer reviewing proposed test fixes.

## Your Role

Review code changes proposed to fix failing tests. Your job is to:
1. Verify the fix addresses the root cause
2. Check that oldCode matches the actual file content
3. Ensure newCode is syntactically valid
4. Validate the fix won't introduce new issues
5. Confirm the fix follows best practices

## Review Criteria

### CRITICAL Issues (Must Fix)
- oldCode doesn't match the file content
- Syntax errors in newCode
- Fix doesn't address the root cause
- Fix could cause other tests to fail
- Security vulnerabilities

### WARNING Issues (Should Fix)
- Suboptimal selector choice
- Missing error handling
- Fragile timing assumptions
- Hardcoded values that should be configurable

### SUGGESTION Issues (Nice to Have)
- Code style inconsistencies
- Opportunities for better readability
- Minor improvements

## Output Format

You MUST respond with a JSON object matching this schema:
{
  "approved": <boolean - true only if no CRITICAL issues>,
  "issues": [
    {
      "severity": "<CRITICAL|WARNING|SUGGESTION>",
      "changeIndex": <index of the change with the issue>,
      "description": "<what's wrong>",
      "suggestion": "<how to fix it>"
    }
  ],
  "assessment": "<overall assessment paragraph>",
  "fixConfidence": <0-100 - likelihood the fix will work>,
  "improvements": ["<optional suggestions for improvement>"]
}

## Approval Rules

- Approve if: No CRITICAL issues AND fix addresses root cause
- Reject if: Any CRITICAL issues OR fix doesn't address the problem
- CRITICAL issues automatically mean rejection"""


def _missing_old_code_issue(index: int, change: CodeChange) -> ReviewIssue:
    return ReviewIssue(
        severity=ReviewSeverity.CRITICAL,
        change_index=index,
        description=(
            f"oldCode not found in file. The code to replace doesn't exist in {change.file}"
        ),
        suggestion="Verify the exact code content including whitespace and indentation",
    )


def validate_old_code_exists(changes: list[CodeChange], file_content: str) -> list[ReviewIssue]:
    """
    Check that every change's ``old_code`` occurs verbatim in a file.

    Args:
        changes: Proposed changes, in order.
        file_content: Content the changes will be applied to.

    Returns:
        One CRITICAL issue per change whose ``old_code`` is absent, in change order.
    """
    return [
        _missing_old_code_issue(index, change)
        for index, change in enumerate(changes)
        if change.old_code not in file_content
    ]


@dataclass
class ReviewInput:
    proposed_fix: FixGenerationOutput
    analysis: AnalysisOutput
    code_context: CodeReadingOutput | None = None


class ReviewStage(PromptedStage[ReviewInput, ReviewOutput]):
    """Critiques a candidate fix and decides whether to approve it."""

    name = "review"
    output_model = ReviewOutput

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, stage_input: ReviewInput, context: FailureContext) -> str:
        fix = stage_input.proposed_fix
        analysis = stage_input.analysis
        lines = [
            "## Fix Review Request",
            "",
            "### Root Cause Being Fixed",
            f"- **Category:** {analysis.root_cause_category.value}",
            f"- **Explanation:** {analysis.explanation}",
            "",
            "### Proposed Fix",
            f"- **Summary:** {fix.summary}",
            f"- **Confidence:** {fix.confidence:g}%",
            f"- **Reasoning:** {fix.reasoning}",
            "",
            "### Code Changes",
        ]

        for number, change in enumerate(fix.changes, start=1):
            lines.extend(
                [
                    "",
                    f"#### Change {number}: {change.file}",
                    f"Line: {change.line}",
                    f"Type: {change.change_type.value}",
                    f"Justification: {change.justification}",
                    "",
                    "**Old Code:**",
                    "```",
                    change.old_code,
                    "```",
                    "",
                    "**New Code:**",
                    "```",
                    change.new_code,
                    "```",
                ]
            )

        for path in dict.fromkeys(change.file for change in fix.changes):
            content = context.known_file_content(path)
            if content is None:
                continue
            lines.extend(
                [
                    "",
                    f"### Original File Content: {path} (for verification)",
                    "```javascript",
                    content,
                    "```",
                ]
            )

        if fix.risks:
            lines.extend(["", "### Identified Risks"])
            lines.extend(f"- {risk}" for risk in fix.risks)

        lines.extend(
            [
                "",
                "## Review Instructions",
                "1. For each change, verify oldCode appears EXACTLY in the file",
                "2. Check that newCode is syntactically valid",
                "3. Verify the fix addresses the root cause",
                "4. Look for potential side effects",
                "5. Assess overall likelihood of success",
                "",
                "Respond with the JSON object as specified in the system prompt.",
            ]
        )
        return "\n".join(lines)

    def finalize(
        self, output: ReviewOutput, stage_input: ReviewInput, context: FailureContext
    ) -> ReviewOutput:
        """Merge local old-code checks into the generated review."""
        local_issues = []
        for index, change in enumerate(stage_input.proposed_fix.changes):
            content = context.known_file_content(change.file)
            if content is not None and change.old_code not in content:
                local_issues.append(_missing_old_code_issue(index, change))

        if local_issues:
            logger.info(
                "review_old_code_missing",
                stage=self.name,
                change_indexes=[issue.change_index for issue in local_issues],
            )
        return output.with_issues(local_issues)
