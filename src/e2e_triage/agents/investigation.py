"""Investigation stage: cross-reference the analysis with real source."""

from __future__ import annotations

from dataclasses import dataclass

from e2e_triage.agents.base import PromptedStage
from e2e_triage.agents.schemas import AnalysisOutput, CodeReadingOutput, InvestigationOutput
from e2e_triage.core.models import FailureContext

MAX_TEST_FILE_CHARS = 4000
MAX_RELATED_FILES = 3
MAX_RELATED_FILE_CHARS = 1500
MAX_DIFF_FILES = 5
MAX_PATCH_CHARS = 1000

SYSTEM_PROMPT = """You are an expert investigator for test failures. Your job is to cross-reference error analysis with actual code to identify the specific cause of failures.

## Investigation Process

1. **Compare Selectors**: Check if selectors in the test exist in the codebase
2. **Trace Changes**: Look for recent changes that might have caused the issue
3. **Check Timing**: Identify potential timing issues between test expectations and app behavior
4. **Validate State**: Verify if test assumptions about state are correct
5. **Cross-Reference**: Match error patterns with code patterns

## Finding Types

- SELECTOR_CHANGE: A selector in the test no longer matches elements in the app
- MISSING_ELEMENT: An element the test expects doesn't exist
- TIMING_GAP: Test is too fast/slow for the app's behavior
- STATE_ISSUE: Test depends on state that isn't set up correctly
- CODE_CHANGE: Recent code changes broke the test
- OTHER: Something else

## Output Format

You MUST respond with a JSON object matching this schema:
{
  "findings": [
    {
      "type": "<finding type>",
      "severity": "<HIGH|MEDIUM|LOW>",
      "description": "<what was found>",
      "evidence": ["<supporting evidence>"],
      "location": {
        "file": "<file path>",
        "line": <line number>,
        "code": "<relevant code snippet>"
      },
      "relationToError": "<how this finding explains the error>"
    }
  ],
  "primaryFinding": <the most important finding object>,
  "isTestCodeFixable": <boolean - can this be fixed by changing test code?>,
  "recommendedApproach": "<one paragraph describing the fix approach>",
  "selectorsToUpdate": [
    {
      "current": "<current selector>",
      "reason": "<why it needs updating>",
      "suggestedReplacement": "<suggested new selector if known>"
    }
  ],
  "confidence": <0-100>
}"""


@dataclass
class InvestigationInput:
    analysis: AnalysisOutput
    code_context: CodeReadingOutput | None = None


def selector_presence(selectors: list[str], code_context: CodeReadingOutput) -> list[str]:
    """
    Report where each selector appears verbatim in the fetched source.

    Args:
        selectors: Selectors named by the analysis.
        code_context: Output of the code reading stage.

    Returns:
        One markdown bullet per selector.
    """
    sources = {"test file": code_context.test_file_content}
    sources.update({f.path: f.content for f in code_context.related_files})

    lines = []
    for selector in selectors:
        found_in = [name for name, content in sources.items() if selector in content]
        if found_in:
            lines.append(f"- `{selector}`: found in {', '.join(found_in)}")
        else:
            lines.append(f"- `{selector}`: not found in fetched source")
    return lines


class InvestigationStage(PromptedStage[InvestigationInput, InvestigationOutput]):
    """Produces evidenced findings and decides whether test code can be fixed."""

    name = "investigation"
    output_model = InvestigationOutput

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def build_user_prompt(self, stage_input: InvestigationInput, context: FailureContext) -> str:
        analysis = stage_input.analysis
        patterns = analysis.patterns
        lines = [
            "## Investigation Request",
            "",
            f"**Test framework:** {context.framework.label}",
            "",
            "### Error Analysis Results",
            f"- **Root Cause Category:** {analysis.root_cause_category.value}",
            f"- **Analysis Confidence:** {analysis.confidence:g}%",
            f"- **Issue Location:** {analysis.issue_location.value}",
            f"- **Explanation:** {analysis.explanation}",
            "",
            "### Identified Selectors",
        ]
        if analysis.selectors:
            lines.extend(f"- `{selector}`" for selector in analysis.selectors)
        else:
            lines.append("- No selectors identified")

        lines.extend(
            [
                "",
                "### Detected Patterns",
                f"- Timeout: {patterns.has_timeout}",
                f"- Visibility Issue: {patterns.has_visibility_issue}",
                f"- Network Call: {patterns.has_network_call}",
                f"- State Assertion: {patterns.has_state_assertion}",
                f"- Dynamic Content: {patterns.has_dynamic_content}",
                f"- Responsive Issue: {patterns.has_responsive_issue}",
            ]
        )

        code = stage_input.code_context
        if code is not None:
            lines.extend(
                [
                    "",
                    "### Test File Content",
                    "```javascript",
                    code.test_file_content[:MAX_TEST_FILE_CHARS],
                    "```",
                ]
            )

            if code.related_files:
                lines.extend(["", "### Related Files"])
                for related in code.related_files[:MAX_RELATED_FILES]:
                    lines.extend(
                        [
                            "",
                            f"#### {related.path}",
                            f"Relevance: {related.relevance}",
                            "```",
                            related.content[:MAX_RELATED_FILE_CHARS],
                            "```",
                        ]
                    )

            if code.custom_commands:
                prefix = context.framework.command_prefix
                lines.extend(["", "### Custom Commands"])
                lines.extend(
                    f"- `{prefix}.{command.name}()` in {command.file}"
                    for command in code.custom_commands
                )

            if analysis.selectors:
                lines.extend(["", "### Selector Presence in Source"])
                lines.extend(selector_presence(analysis.selectors, code))

        if context.changed_files:
            lines.extend(["", "### Recent Changes (PR Diff)"])
            for changed in context.changed_files[:MAX_DIFF_FILES]:
                lines.append(f"- **{changed.filename}** ({changed.status})")
                if changed.patch:
                    lines.extend(["```diff", changed.patch[:MAX_PATCH_CHARS], "```"])

        if context.has_screenshots:
            lines.extend(
                [
                    "",
                    "### Screenshots",
                    f"{len(context.screenshots)} screenshot(s) are attached. "
                    "Analyze them to see:",
                    "- What elements are visible",
                    "- What the actual DOM state looks like",
                    "- Any visual clues about the failure",
                ]
            )

        lines.extend(
            [
                "",
                "## Instructions",
                "Based on all the information above:",
                "1. Identify all findings that explain or contribute to the failure",
                "2. Determine the primary cause",
                "3. Check if the issue can be fixed in test code",
                "4. List any selectors that need to be updated",
                "5. Provide a recommended fix approach",
                "",
                "Respond with the JSON object as specified in the system prompt.",
            ]
        )
        return "\n".join(lines)
