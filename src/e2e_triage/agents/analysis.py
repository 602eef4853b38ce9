"""Analysis stage: classify the root cause of a failure."""

from __future__ import annotations

from dataclasses import dataclass

from e2e_triage.agents.base import PromptedStage
from e2e_triage.agents.schemas import AnalysisOutput
from e2e_triage.core.models import FailureContext

MAX_STACK_TRACE_CHARS = 2000
MAX_LOG_CHARS = 3000

SYSTEM_PROMPT = """You are an expert test failure analyst specializing in Cypress, WebDriverIO and other end-to-end test frameworks.

Your job is to analyze test failures and identify the root cause with high precision.

## Root Cause Categories

- SELECTOR_MISMATCH: The selector used in the test doesn't match any element or matches the wrong element. This includes:
  - Changed class names, IDs, or data attributes
  - Missing elements
  - Elements moved to different locations in the DOM
  - Responsive design changes affecting element presence

- TIMING_ISSUE: The test has timing problems. This includes:
  - Race conditions between test and application
  - Insufficient waits for async operations
  - Animation timing
  - Network request timing

- STATE_DEPENDENCY: The test depends on application state that isn't properly set up. This includes:
  - Missing login state
  - Incorrect initial data
  - Previous test side effects

- NETWORK_ISSUE: Problems with network requests. This includes:
  - Failed API calls
  - Timeout on network requests
  - Unexpected response data

- ELEMENT_VISIBILITY: Element exists but isn't visible or interactable. This includes:
  - Element hidden behind another element
  - Element outside viewport
  - Element with visibility: hidden or display: none
  - Element covered by modal/overlay

- ASSERTION_MISMATCH: The assertion logic is incorrect. This includes:
  - Wrong expected values
  - Incorrect assertion method
  - Partial match needed instead of exact match

- DATA_DEPENDENCY: Test depends on specific data that has changed or doesn't exist.

- ENVIRONMENT_ISSUE: Problems with test environment, not the test or app itself.

- UNKNOWN: Cannot determine root cause from available information.

## Output Format

You MUST respond with a JSON object matching this schema:
{
  "rootCauseCategory": "<one of the categories above>",
  "contributingFactors": ["<additional categories that may contribute>"],
  "confidence": <number 0-100>,
  "explanation": "<detailed explanation>",
  "selectors": ["<list of all selectors found in the error>"],
  "elements": ["<list of element descriptions mentioned>"],
  "issueLocation": "<TEST_CODE|APP_CODE|BOTH|UNKNOWN>",
  "patterns": {
    "hasTimeout": <boolean>,
    "hasVisibilityIssue": <boolean>,
    "hasNetworkCall": <boolean>,
    "hasStateAssertion": <boolean>,
    "hasDynamicContent": <boolean>,
    "hasResponsiveIssue": <boolean>
  },
  "suggestedApproach": "<one sentence describing the likely fix>"
}"""


@dataclass
class AnalysisInput:
    """Extra input for the analysis stage; the failure context carries the rest."""

    additional_context: str | None = None


class AnalysisStage(PromptedStage[AnalysisInput, AnalysisOutput]):
    """Classifies a failure into a root cause category with a confidence."""

    name = "analysis"
    output_model = AnalysisOutput

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, stage_input: AnalysisInput, context: FailureContext) -> str:
        lines = [
            "## Error Analysis Request",
            "",
            "### Test Information",
            f"- **Test File:** {context.test_file}",
            f"- **Test Name:** {context.test_name}",
            f"- **Test framework:** {context.framework.label}",
        ]
        if context.error_type:
            lines.append(f"- **Error Type:** {context.error_type}")
        if context.error_selector:
            lines.append(f"- **Failed Selector:** {context.error_selector}")

        lines.extend(["", "### Error Message", "```", context.error_message, "```"])

        if context.stack_trace:
            lines.extend(
                [
                    "",
                    "### Stack Trace",
                    "```",
                    context.stack_trace[:MAX_STACK_TRACE_CHARS],
                    "```",
                ]
            )

        if context.logs:
            logs_text = "\n".join(context.logs)[:MAX_LOG_CHARS]
            lines.extend(["", "### Relevant Logs", "```", logs_text, "```"])

        if context.changed_files:
            lines.extend(["", "### Recent Changes (PR Diff)"])
            lines.extend(f"- {f.filename} ({f.status})" for f in context.changed_files)

        if stage_input.additional_context:
            lines.extend(["", "### Additional Context", stage_input.additional_context])

        if context.has_screenshots:
            lines.extend(
                [
                    "",
                    "### Screenshots",
                    f"{len(context.screenshots)} screenshot(s) attached. "
                    "Analyze them for visual cues about the failure.",
                ]
            )

        lines.extend(
            [
                "",
                "## Instructions",
                "Analyze the above information and provide your root cause analysis "
                "in the required JSON format.",
                "Consider all available evidence including error messages, stack traces, "
                "logs, and screenshots.",
                "Be specific about which selectors are problematic and why.",
            ]
        )
        return "\n".join(lines)
